"""
Habit Log Service - habits and their day-keyed completion/notes view

Storage keeps one ``HabitLog`` row per (habit, date). Callers see each habit as
``completed_dates`` / ``notes`` maps keyed by ``YYYY-MM-DD``. Every mutation is
filtered by the owning user; a habit id that belongs to someone else behaves
exactly like a missing one.
"""

from datetime import date
from typing import Any, Dict, List, Optional
import logging
import re

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.errors import Conflict, NotFound, ValidationError
from app.models.habit import Habit, HabitLog
from app.services.habit_streaks import HabitStreakCalculator, get_streak

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
TIME_RE = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")
MAX_NAME_LENGTH = 100
MAX_NOTE_LENGTH = 500


def validate_date(value: str) -> str:
    if not isinstance(value, str) or not DATE_RE.match(value):
        raise ValidationError("Date must be in YYYY-MM-DD format")
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid calendar date: {value}")
    return value


def validate_name(value: str) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError("Habit name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Habit name must be at most {MAX_NAME_LENGTH} characters")
    return name


def validate_note(value: Optional[str]) -> str:
    note = value or ""
    if len(note) > MAX_NOTE_LENGTH:
        raise ValidationError(f"Note must be at most {MAX_NOTE_LENGTH} characters")
    return note


def validate_reminder_time(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    if not TIME_RE.match(value):
        raise ValidationError("Reminder time must be HH:mm (24h)")
    return value


def build_day_view(logs) -> Dict[str, Dict[str, Any]]:
    """Reduce log rows into ``completed_dates`` and ``notes`` maps"""
    completed_dates: Dict[str, bool] = {}
    notes: Dict[str, str] = {}
    for log in logs:
        completed_dates[log.date] = True
        if log.note:
            notes[log.date] = log.note
    return {"completed_dates": completed_dates, "notes": notes}


def habit_to_view(habit: Habit, today: Optional[date] = None) -> Dict[str, Any]:
    view = build_day_view(habit.logs)
    return {
        "id": habit.id,
        "name": habit.name,
        "order": habit.order,
        "reminder_time": habit.reminder_time,
        "completed_dates": view["completed_dates"],
        "notes": view["notes"],
        "streak": get_streak(view["completed_dates"], today),
        "best_streak": HabitStreakCalculator.best_streak(view["completed_dates"]),
    }


class HabitLogService:
    """Owner-scoped operations on habits, their logs and their ordering"""

    def __init__(self, db: Session):
        self.db = db

    # Reads

    def fetch_habits_for_user(self, user_id: str, today: Optional[date] = None) -> List[Dict[str, Any]]:
        habits = (
            self.db.query(Habit)
            .options(selectinload(Habit.logs))
            .filter(Habit.user_id == user_id)
            .order_by(Habit.order.asc(), Habit.created_at.asc())
            .all()
        )
        return [habit_to_view(habit, today) for habit in habits]

    def get_owned_habit(self, user_id: str, habit_id: str) -> Habit:
        habit = self.db.query(Habit).filter(Habit.id == habit_id, Habit.user_id == user_id).first()
        if habit is None:
            raise NotFound("Habit not found")
        return habit

    # Habit lifecycle

    def create_habit(self, user_id: str, name: str) -> Habit:
        name = validate_name(name)
        max_order = self.db.query(func.max(Habit.order)).filter(Habit.user_id == user_id).scalar()
        habit = Habit(
            user_id=user_id,
            name=name,
            order=(max_order if max_order is not None else -1) + 1
        )
        self.db.add(habit)
        self.db.commit()
        self.db.refresh(habit)
        logger.info(f"Created habit {habit.id} for user {user_id} at rank {habit.order}")
        return habit

    def rename_habit(self, user_id: str, habit_id: str, name: str) -> Habit:
        name = validate_name(name)
        habit = self.get_owned_habit(user_id, habit_id)
        habit.name = name
        self.db.commit()
        return habit

    def delete_habit(self, user_id: str, habit_id: str) -> None:
        habit = self.get_owned_habit(user_id, habit_id)
        self.db.delete(habit)
        self.db.commit()
        logger.info(f"Deleted habit {habit_id} for user {user_id}")

    def set_reminder_time(self, user_id: str, habit_id: str, reminder_time: Optional[str]) -> Habit:
        reminder_time = validate_reminder_time(reminder_time)
        habit = self.get_owned_habit(user_id, habit_id)
        habit.reminder_time = reminder_time
        self.db.commit()
        return habit

    # Day logs

    def _find_log(self, habit_id: str, day: str) -> Optional[HabitLog]:
        return self.db.query(HabitLog).filter(HabitLog.habit_id == habit_id, HabitLog.date == day).first()

    def _commit_log_change(self):
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Log was changed concurrently, refresh and retry")

    def toggle_log(self, user_id: str, habit_id: str, day: str) -> bool:
        """Flip the done state for ``day`` and return the new state.

        Toggling off deletes the row, so any note on that day is discarded.
        """
        validate_date(day)
        self.get_owned_habit(user_id, habit_id)

        existing = self._find_log(habit_id, day)
        if existing is not None:
            self.db.delete(existing)
            done = False
        else:
            self.db.add(HabitLog(habit_id=habit_id, date=day))
            done = True
        self._commit_log_change()
        return done

    def set_done(self, user_id: str, habit_id: str, day: str, done: bool) -> bool:
        """Idempotent variant of ``toggle_log``: retries cannot invert intent"""
        validate_date(day)
        self.get_owned_habit(user_id, habit_id)

        existing = self._find_log(habit_id, day)
        if done and existing is None:
            self.db.add(HabitLog(habit_id=habit_id, date=day))
        elif not done and existing is not None:
            # Same as toggling off: the note goes with the row
            self.db.delete(existing)
        else:
            return done
        self._commit_log_change()
        return done

    def upsert_note(self, user_id: str, habit_id: str, day: str, note: Optional[str]) -> HabitLog:
        """Create or update the note for ``day``; a missing row is created, marking the day done"""
        validate_date(day)
        note = validate_note(note)
        self.get_owned_habit(user_id, habit_id)

        log = self._find_log(habit_id, day)
        if log is None:
            log = HabitLog(habit_id=habit_id, date=day, note=note or None)
            self.db.add(log)
        else:
            log.note = note or None
        self._commit_log_change()
        return log

    # Ordering

    def reorder(self, user_id: str, ordered_ids: List[str]) -> None:
        """Persist ``order = index`` for each id, all or nothing"""
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationError("Habit ids must be unique")
        if not ordered_ids:
            return

        habits = (
            self.db.query(Habit)
            .filter(Habit.user_id == user_id, Habit.id.in_(ordered_ids))
            .all()
        )
        by_id = {habit.id: habit for habit in habits}
        if len(by_id) != len(ordered_ids):
            raise NotFound("Habit not found")

        try:
            for position, habit_id in enumerate(ordered_ids):
                by_id[habit_id].order = position
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Reorder failed for user {user_id}, rolled back")
            raise
