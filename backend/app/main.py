from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging

from app.core.config import settings
from app.core.errors import HabitHubError, habit_hub_error_handler
from app.core.llm import llm_client
from app.db.session import create_tables
from app.routes import auth, habits, profile, cron, ai, conversations
from app.services.messaging import messaging_service
from app.services.scheduler import scheduler_service


# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.app_name} API")
    logger.info(f"CORS allow_origins: {settings.cors_origins}")
    if not settings.cron_secret:
        logger.warning("CRON_SECRET is not set; the reminder trigger will reject every call")
    create_tables()
    scheduler_service.start()
    yield
    # Shutdown
    scheduler_service.shutdown()
    await messaging_service.close()
    await llm_client.close()
    logger.info("Shutting down API")


async def http_error_handler(request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None)
    )


app = FastAPI(
    title=f"{settings.app_name} API",
    description="Mini habit tracking with daily logs, WhatsApp reminders and an AI coach",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware - specific origins for credentials support
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(HabitHubError, habit_hub_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(habits.router, prefix="/api/habits", tags=["habits"])
app.include_router(profile.router, prefix="/api/profile", tags=["profile"])
app.include_router(cron.router, prefix="/api/cron", tags=["cron"])
app.include_router(ai.router, prefix="/api/ai", tags=["ai"])
app.include_router(conversations.router, prefix="/api/conversations", tags=["conversations"])


@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.app_name} API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}
