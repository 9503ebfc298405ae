from datetime import datetime, timezone
from typing import Any, Dict, List
import logging

from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.core.errors import NotFound, ValidationError
from app.models.conversation import Conversation, DEFAULT_TITLE

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
VALID_ROLES = ("user", "assistant")


def _clean_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    cleaned = []
    for message in messages:
        role = message.get("role")
        if role not in VALID_ROLES:
            raise ValidationError(f"Invalid message role: {role}")
        entry: Dict[str, Any] = {"role": role, "content": str(message.get("content") or "")}
        habits = message.get("habits")
        if habits:
            entry["habits"] = [
                {"name": str(h.get("name", "")), "why": str(h.get("why", ""))}
                for h in habits
            ]
        cleaned.append(entry)
    return cleaned


class ConversationService:
    """Saved AI coach sessions, always scoped to their owner"""

    def __init__(self, db: Session):
        self.db = db

    def list_summaries(self, user_id: str) -> List[Dict[str, Any]]:
        conversations = (
            self.db.query(Conversation)
            .filter(Conversation.user_id == user_id)
            .order_by(desc(Conversation.updated_at))
            .all()
        )
        return [
            {
                "id": c.id,
                "title": c.title,
                "updated_at": c.updated_at.isoformat() if c.updated_at else None,
            }
            for c in conversations
        ]

    def get(self, user_id: str, conversation_id: str) -> Conversation:
        conversation = self.db.query(Conversation).filter(
            Conversation.id == conversation_id,
            Conversation.user_id == user_id
        ).first()
        if conversation is None:
            raise NotFound("Conversation not found")
        return conversation

    def create(self, user_id: str) -> Conversation:
        conversation = Conversation(
            user_id=user_id,
            title=DEFAULT_TITLE,
            messages=[],
            updated_at=datetime.now(timezone.utc)
        )
        self.db.add(conversation)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def save_messages(self, user_id: str, conversation_id: str, messages: List[Dict[str, Any]]) -> Conversation:
        """Replace the message list wholesale; the default title is replaced once"""
        conversation = self.get(user_id, conversation_id)
        cleaned = _clean_messages(messages)

        if conversation.title == DEFAULT_TITLE:
            first_user = next((m["content"] for m in cleaned if m["role"] == "user" and m["content"].strip()), None)
            if first_user:
                conversation.title = first_user.strip()[:MAX_TITLE_LENGTH]

        conversation.messages = cleaned
        conversation.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def rename(self, user_id: str, conversation_id: str, title: str) -> Conversation:
        title = (title or "").strip()
        if not title or len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title must be 1-{MAX_TITLE_LENGTH} characters")
        conversation = self.get(user_id, conversation_id)
        conversation.title = title
        self.db.commit()
        return conversation

    def delete(self, user_id: str, conversation_id: str) -> None:
        conversation = self.get(user_id, conversation_id)
        self.db.delete(conversation)
        self.db.commit()
        logger.info(f"Deleted conversation {conversation_id} for user {user_id}")
