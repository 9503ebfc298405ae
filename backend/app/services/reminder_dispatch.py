"""
Reminder Dispatch - sends each habit's reminder at most once per local day

One invocation walks every user with a phone number and every habit with a
reminder time. A habit fires when its ``HH:mm`` equals the current minute in
the user's timezone and no ``ReminderLog`` exists for that local date. The
job must be triggered at least once a minute; missed minutes are not retried.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.models.habit import Habit
from app.models.reminder import ReminderLog
from app.models.user import User
from app.services.messaging import MessagingService
from app.services.timezones import local_now

logger = logging.getLogger(__name__)


def reminder_text(user: User, habit: Habit) -> str:
    name = user.name or "there"
    return f"⏰ Hey {name}! Time to: {habit.name}"


class ReminderDispatcher:
    """Runs one pass of the reminder job against the database"""

    def __init__(self, db: Session, messenger: MessagingService):
        self.db = db
        self.messenger = messenger

    def _load_users(self) -> List[User]:
        return (
            self.db.query(User)
            .filter(User.phone.isnot(None))
            .options(selectinload(User.habits).selectinload(Habit.reminder_logs))
            .all()
        )

    async def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Dispatch due reminders and return ``{"sent": n, "errors": [...]}``"""
        start_time = datetime.now()
        results: Dict[str, Any] = {"sent": 0, "errors": []}

        users = self._load_users()
        for user in users:
            user_now = local_now(user.timezone, now)
            user_time = user_now.strftime("%H:%M")
            user_date = user_now.strftime("%Y-%m-%d")

            for habit in sorted(user.habits, key=lambda h: h.order):
                if habit.reminder_time is None or habit.reminder_time != user_time:
                    continue
                if any(log.date == user_date for log in habit.reminder_logs):
                    continue

                if await self._dispatch(user, habit, user_date, results["errors"]):
                    results["sent"] += 1

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"⏰ Reminder run complete: {results['sent']} sent, "
            f"{len(results['errors'])} errors, {len(users)} users in {elapsed:.2f}s"
        )
        return results

    async def _dispatch(self, user: User, habit: Habit, user_date: str, errors: List[str]) -> bool:
        try:
            await self.messenger.send(user.phone, reminder_text(user, habit))
        except Exception as e:
            error_msg = f"habit {habit.id}: {e}"
            logger.error(f"Reminder send failed for {error_msg}")
            errors.append(error_msg)
            return False

        self.db.add(ReminderLog(habit_id=habit.id, date=user_date))
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent run recorded this (habit, date) first
            self.db.rollback()
            logger.warning(f"Reminder for habit {habit.id} on {user_date} already recorded by another run")
            return False
        return True
