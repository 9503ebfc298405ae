from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base
import uuid

DEFAULT_TITLE = "New Conversation"


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(100), nullable=False, default=DEFAULT_TITLE)
    messages = Column(JSON, nullable=False, default=list)  # [{role, content, habits?}]
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="conversations")

    def __repr__(self):
        return f"<Conversation(title='{self.title}')>"
