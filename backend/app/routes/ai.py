from typing import List, Optional
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from app.core.deps import get_current_user
from app.core.errors import ExternalServiceError
from app.core.llm import GeminiClient, get_llm_client
from app.models.user import User
from app.services.ai_coach import AICoachService, MalformedModelOutput
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class AnalyzeRequest(BaseModel):
    apiKey: Optional[str] = None
    context: str = ""
    modelName: Optional[str] = None


class ChatTurn(BaseModel):
    role: str
    content: str


class GenerateRequest(BaseModel):
    apiKey: Optional[str] = None
    modelName: Optional[str] = None
    goal: Optional[str] = None
    context: Optional[str] = None
    messages: Optional[List[ChatTurn]] = None
    existingHabits: Optional[List[str]] = None


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/analyze")
async def analyze(
    payload: AnalyzeRequest,
    current_user: User = Depends(get_current_user),
    llm: GeminiClient = Depends(get_llm_client)
):
    """Weekly-review style analysis of the supplied habit history"""
    if not payload.apiKey:
        return _error("API Key is required", 400)

    try:
        text = await AICoachService(llm).analyze(payload.apiKey, payload.context, payload.modelName)
    except ExternalServiceError as e:
        logger.error(f"AI analysis error: {e.message}")
        return _error(e.message or "Failed to generate insight", 500)
    return {"result": text}


@router.post("/generate-habits")
async def generate_habits(
    payload: GenerateRequest,
    current_user: User = Depends(get_current_user),
    llm: GeminiClient = Depends(get_llm_client)
):
    """Goal to habits in one shot, or one conversational coaching turn when ``messages`` is sent"""
    if not payload.apiKey:
        return _error("API Key is required", 400)

    coach = AICoachService(llm)

    if payload.messages is not None:
        if not payload.messages:
            return _error("Messages are required", 400)
        try:
            return await coach.chat(
                payload.apiKey,
                payload.modelName,
                [m.model_dump() for m in payload.messages],
                payload.existingHabits
            )
        except ExternalServiceError as e:
            logger.error(f"Generate habits chat error: {e.message}")
            return _error(e.message, 500)

    if not payload.goal or not payload.goal.strip():
        return _error("Goal is required", 400)
    try:
        habits = await coach.generate_habits(
            payload.apiKey, payload.modelName, payload.goal.strip(), (payload.context or "").strip() or None
        )
    except MalformedModelOutput as e:
        return _error(str(e), 500)
    except ExternalServiceError as e:
        logger.error(f"Generate habits error: {e.message}")
        return _error(e.message, 500)
    return {"habits": habits}
