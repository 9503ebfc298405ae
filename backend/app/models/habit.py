from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base
import uuid


class Habit(Base):
    __tablename__ = "habits"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    order = Column("order", Integer, nullable=False, default=0)
    reminder_time = Column(String(5), nullable=True)  # HH:mm, 24h
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="habits")
    logs = relationship("HabitLog", back_populates="habit", cascade="all, delete-orphan", passive_deletes=True)
    reminder_logs = relationship("ReminderLog", back_populates="habit", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Habit(name='{self.name}', order={self.order})>"


class HabitLog(Base):
    """One row per (habit, calendar date); the row's existence means done"""
    __tablename__ = "habit_logs"
    __table_args__ = (UniqueConstraint("habit_id", "date", name="uq_habit_log_habit_date"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    habit_id = Column(String, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD in the user's timezone
    note = Column(Text, nullable=True)

    habit = relationship("Habit", back_populates="logs")

    def __repr__(self):
        return f"<HabitLog(habit_id='{self.habit_id}', date='{self.date}')>"
