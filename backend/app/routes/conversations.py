from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List, Optional
from app.core.deps import get_current_user
from app.db.session import get_db
from app.models.conversation import Conversation
from app.models.user import User
from app.services.conversations import ConversationService

router = APIRouter()


class HabitSuggestion(BaseModel):
    name: str
    why: str = ""


class ConversationMessage(BaseModel):
    role: str  # user, assistant
    content: str
    habits: Optional[List[HabitSuggestion]] = None


class MessagesUpdate(BaseModel):
    messages: List[ConversationMessage]


class TitleUpdate(BaseModel):
    title: str


class ConversationSummary(BaseModel):
    id: str
    title: str
    updated_at: Optional[str] = None


class ConversationResponse(ConversationSummary):
    messages: List[ConversationMessage] = []


def _to_response(conversation: Conversation) -> ConversationResponse:
    return ConversationResponse(
        id=conversation.id,
        title=conversation.title,
        updated_at=conversation.updated_at.isoformat() if conversation.updated_at else None,
        messages=conversation.messages or []
    )


@router.get("", response_model=List[ConversationSummary])
async def list_conversations(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Saved coach conversations, most recently updated first"""
    return ConversationService(db).list_summaries(current_user.id)


@router.post("", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _to_response(ConversationService(db).create(current_user.id))


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _to_response(ConversationService(db).get(current_user.id, conversation_id))


@router.put("/{conversation_id}/messages", response_model=ConversationResponse)
async def save_messages(
    conversation_id: str,
    payload: MessagesUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    messages = [m.model_dump(exclude_none=True) for m in payload.messages]
    return _to_response(ConversationService(db).save_messages(current_user.id, conversation_id, messages))


@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def rename_conversation(
    conversation_id: str,
    payload: TitleUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _to_response(ConversationService(db).rename(current_user.id, conversation_id, payload.title))


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    ConversationService(db).delete(current_user.id, conversation_id)
