from typing import List, Optional
from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from pydantic import BaseModel
import secrets
from app.core.config import settings
from app.db.session import get_db
from app.services.messaging import MessagingService, get_messaging_service
from app.services.reminder_dispatch import ReminderDispatcher

router = APIRouter()


class ReminderRunResponse(BaseModel):
    sent: int
    errors: List[str]


def _authorized(authorization: Optional[str]) -> bool:
    if not settings.cron_secret or not authorization:
        return False
    supplied = authorization[7:] if authorization.startswith("Bearer ") else authorization
    return secrets.compare_digest(supplied.encode("utf-8"), settings.cron_secret.encode("utf-8"))


@router.get("/reminders", response_model=ReminderRunResponse)
async def run_reminders(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    messenger: MessagingService = Depends(get_messaging_service)
):
    """Externally triggered reminder pass; call at least once a minute"""
    if not _authorized(authorization):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    return await ReminderDispatcher(db, messenger).run()
