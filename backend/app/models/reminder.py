from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base
import uuid


class ReminderLog(Base):
    """Marks that a habit's reminder went out on a given local date"""
    __tablename__ = "reminder_logs"
    __table_args__ = (UniqueConstraint("habit_id", "date", name="uq_reminder_log_habit_date"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    habit_id = Column(String, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    date = Column(String(10), nullable=False)
    sent_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    habit = relationship("Habit", back_populates="reminder_logs")

    def __repr__(self):
        return f"<ReminderLog(habit_id='{self.habit_id}', date='{self.date}')>"
