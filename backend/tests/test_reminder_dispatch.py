import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from app.models.habit import Habit
from app.models.reminder import ReminderLog
from app.services.reminder_dispatch import ReminderDispatcher
from conftest import FakeMessenger, make_user

# 12:00 UTC on 15 Jan is 07:00 in New York (EST)
NY_SEVEN_AM = datetime(2026, 1, 15, 12, 0, 30, tzinfo=timezone.utc)


def _habit(db, user, name="Drink water", reminder_time="07:00", order=0):
    habit = Habit(user_id=user.id, name=name, reminder_time=reminder_time, order=order)
    db.add(habit)
    db.commit()
    return habit


def _run(db, messenger, now=NY_SEVEN_AM):
    return asyncio.run(ReminderDispatcher(db, messenger).run(now))


def test_sends_once_per_local_day(db, messenger):
    user = make_user(db, phone="15551234567", timezone="America/New_York")
    habit = _habit(db, user)

    first = _run(db, messenger)
    second = _run(db, messenger)

    assert first == {"sent": 1, "errors": []}
    assert second == {"sent": 0, "errors": []}
    assert messenger.sent == [{"phone": "15551234567", "message": "⏰ Hey Ana! Time to: Drink water"}]
    logs = db.query(ReminderLog).all()
    assert [(log.habit_id, log.date) for log in logs] == [(habit.id, "2026-01-15")]


def test_skips_habits_not_due_this_minute(db, messenger):
    user = make_user(db, phone="15551234567", timezone="America/New_York")
    _habit(db, user, reminder_time="07:01")
    _habit(db, user, name="No reminder", reminder_time=None, order=1)

    assert _run(db, messenger) == {"sent": 0, "errors": []}
    assert messenger.sent == []


def test_user_without_phone_is_never_contacted(db, messenger):
    user = make_user(db, phone=None, timezone="America/New_York")
    _habit(db, user)

    assert _run(db, messenger) == {"sent": 0, "errors": []}
    assert messenger.sent == []
    assert db.query(ReminderLog).count() == 0


def test_uses_each_users_local_date(db, messenger):
    # 23:30 UTC on 15 Jan is 08:30 on 16 Jan in Tokyo
    user = make_user(db, phone="818012345678", timezone="Asia/Tokyo")
    _habit(db, user, reminder_time="08:30")

    result = _run(db, messenger, now=datetime(2026, 1, 15, 23, 30, tzinfo=timezone.utc))

    assert result["sent"] == 1
    assert db.query(ReminderLog).one().date == "2026-01-16"


def test_missing_timezone_falls_back_to_default(db, messenger):
    # Default zone is Asia/Jakarta (UTC+7)
    user = make_user(db, phone="628123456789", timezone=None, name=None)
    _habit(db, user, reminder_time="19:00")

    _run(db, messenger)

    assert messenger.sent[0]["message"] == "⏰ Hey there! Time to: Drink water"


def test_failed_send_is_reported_and_does_not_stop_the_batch(db, messenger):
    failing = make_user(db, email="fail@example.com", phone="15550000000", timezone="America/New_York")
    ok = make_user(db, email="ok@example.com", phone="15551111111", timezone="America/New_York")
    broken = _habit(db, failing)
    _habit(db, ok)
    messenger.failing.add("15550000000")

    result = _run(db, messenger)

    assert result["sent"] == 1
    assert len(result["errors"]) == 1
    assert result["errors"][0].startswith(f"habit {broken.id}: ")
    assert db.query(ReminderLog).filter(ReminderLog.habit_id == broken.id).count() == 0

    # Not recorded, so the next firing in the same minute tries again
    messenger.failing.clear()
    assert _run(db, messenger)["sent"] == 1


def test_reminder_log_pair_is_unique_in_storage(db):
    user = make_user(db)
    habit = _habit(db, user)
    db.add(ReminderLog(habit_id=habit.id, date="2026-01-15"))
    db.commit()

    db.add(ReminderLog(habit_id=habit.id, date="2026-01-15"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


class RacingMessenger(FakeMessenger):
    """Records a ReminderLog from another session while the send is in flight"""

    def __init__(self, session_factory, habit_id, date):
        super().__init__()
        self.session_factory = session_factory
        self.habit_id = habit_id
        self.date = date

    async def send(self, phone, message):
        result = await super().send(phone, message)
        if len(self.sent) == 1:
            other = self.session_factory()
            try:
                other.add(ReminderLog(habit_id=self.habit_id, date=self.date))
                other.commit()
            finally:
                other.close()
        return result


def test_concurrent_run_recording_first_is_not_counted(db, session_factory):
    user = make_user(db, phone="15551234567", timezone="America/New_York")
    raced = _habit(db, user)
    other = _habit(db, user, name="Stretch", order=1)
    raced_id, other_id = raced.id, other.id
    messenger = RacingMessenger(session_factory, raced_id, "2026-01-15")

    result = _run(db, messenger)

    assert result == {"sent": 1, "errors": []}
    assert [m["message"] for m in messenger.sent] == [
        "⏰ Hey Ana! Time to: Drink water",
        "⏰ Hey Ana! Time to: Stretch",
    ]
    db.expire_all()
    logs = db.query(ReminderLog).order_by(ReminderLog.habit_id).all()
    assert sorted((log.habit_id, log.date) for log in logs) == sorted(
        [(raced_id, "2026-01-15"), (other_id, "2026-01-15")]
    )
