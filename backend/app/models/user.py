from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base
import uuid


class User(Base):
    __tablename__ = "app_user"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=True)
    phone = Column(String(15), nullable=True)  # digits only
    phone_verified = Column(Boolean, nullable=False, default=False)
    phone_otp = Column(String(6), nullable=True)
    phone_otp_expiry = Column(DateTime(timezone=True), nullable=True)
    timezone = Column(String, nullable=True)  # IANA name
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    habits = relationship("Habit", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    conversations = relationship("Conversation", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<User(email='{self.email}')>"
