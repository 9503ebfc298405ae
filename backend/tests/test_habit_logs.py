from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.errors import NotFound, ValidationError
from app.models.habit import Habit, HabitLog
from app.services.habit_logs import HabitLogService


@pytest.fixture
def service(db):
    return HabitLogService(db)


def _view(service, user, habit_id):
    return next(h for h in service.fetch_habits_for_user(user.id) if h["id"] == habit_id)


def test_new_habits_get_increasing_ranks(service, user):
    first = service.create_habit(user.id, "Read one page")
    second = service.create_habit(user.id, "  Floss one tooth  ")

    assert first.order == 0
    assert second.order == 1
    assert second.name == "Floss one tooth"


def test_ranks_are_per_user(service, user, other_user):
    service.create_habit(user.id, "Read one page")
    service.create_habit(user.id, "Walk")
    theirs = service.create_habit(other_user.id, "Stretch")

    assert theirs.order == 0


@pytest.mark.parametrize("times, expected", [(1, True), (2, False), (3, True), (4, False)])
def test_toggle_parity(service, user, times, expected):
    habit = service.create_habit(user.id, "Read one page")

    for _ in range(times):
        service.toggle_log(user.id, habit.id, "2026-10-19")

    assert _view(service, user, habit.id)["completed_dates"].get("2026-10-19", False) is expected


def test_toggle_off_discards_note(service, user, db):
    habit = service.create_habit(user.id, "Read one page")
    service.upsert_note(user.id, habit.id, "2026-10-19", "Read in the train")

    assert service.toggle_log(user.id, habit.id, "2026-10-19") is False

    view = _view(service, user, habit.id)
    assert "2026-10-19" not in view["completed_dates"]
    assert "2026-10-19" not in view["notes"]
    assert db.query(HabitLog).count() == 0


def test_set_done_is_idempotent(service, user, db):
    habit = service.create_habit(user.id, "Read one page")

    service.set_done(user.id, habit.id, "2026-10-19", True)
    service.set_done(user.id, habit.id, "2026-10-19", True)
    assert db.query(HabitLog).count() == 1

    service.set_done(user.id, habit.id, "2026-10-19", False)
    service.set_done(user.id, habit.id, "2026-10-19", False)
    assert db.query(HabitLog).count() == 0


def test_storage_rejects_duplicate_log_rows(db, user):
    habit = Habit(user_id=user.id, name="Read", order=0)
    db.add(habit)
    db.commit()

    db.add(HabitLog(habit_id=habit.id, date="2026-10-19"))
    db.commit()
    db.add(HabitLog(habit_id=habit.id, date="2026-10-19"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_note_round_trip_marks_day_done(service, user):
    habit = service.create_habit(user.id, "Read one page")

    service.upsert_note(user.id, habit.id, "2026-10-18", "Felt easy")

    view = _view(service, user, habit.id)
    assert view["notes"] == {"2026-10-18": "Felt easy"}
    assert view["completed_dates"] == {"2026-10-18": True}


def test_empty_note_leaves_notes_map_but_keeps_completion(service, user):
    habit = service.create_habit(user.id, "Read one page")
    service.upsert_note(user.id, habit.id, "2026-10-18", "Felt easy")

    service.upsert_note(user.id, habit.id, "2026-10-18", "")

    view = _view(service, user, habit.id)
    assert "2026-10-18" not in view["notes"]
    assert view["completed_dates"]["2026-10-18"] is True


@pytest.mark.parametrize("bad_date", ["2026-1-19", "19-10-2026", "2026-02-30", "", "2026-10-19T00:00", "2026-10-1٩"])
def test_invalid_dates_are_rejected_without_writes(service, user, db, bad_date):
    habit = service.create_habit(user.id, "Read one page")

    with pytest.raises(ValidationError):
        service.toggle_log(user.id, habit.id, bad_date)
    assert db.query(HabitLog).count() == 0


def test_oversized_note_is_rejected(service, user, db):
    habit = service.create_habit(user.id, "Read one page")

    with pytest.raises(ValidationError):
        service.upsert_note(user.id, habit.id, "2026-10-19", "x" * 501)
    assert db.query(HabitLog).count() == 0


@pytest.mark.parametrize("name", ["", "   ", "x" * 101])
def test_habit_name_bounds(service, user, name):
    with pytest.raises(ValidationError):
        service.create_habit(user.id, name)


@pytest.mark.parametrize("value", ["7:00", "24:00", "07:60", "0700", "0٧:00"])
def test_reminder_time_format(service, user, value):
    habit = service.create_habit(user.id, "Read one page")
    with pytest.raises(ValidationError):
        service.set_reminder_time(user.id, habit.id, value)


def test_reminder_time_can_be_cleared(service, user):
    habit = service.create_habit(user.id, "Read one page")
    service.set_reminder_time(user.id, habit.id, "21:30")

    assert service.set_reminder_time(user.id, habit.id, None).reminder_time is None


def test_foreign_habit_mutations_fail_without_change(service, user, other_user, db):
    habit = service.create_habit(user.id, "Read one page")

    with pytest.raises(NotFound):
        service.toggle_log(other_user.id, habit.id, "2026-10-19")
    with pytest.raises(NotFound):
        service.upsert_note(other_user.id, habit.id, "2026-10-19", "mine now")
    with pytest.raises(NotFound):
        service.rename_habit(other_user.id, habit.id, "Hijacked")
    with pytest.raises(NotFound):
        service.delete_habit(other_user.id, habit.id)
    with pytest.raises(NotFound):
        service.reorder(other_user.id, [habit.id])

    db.expire_all()
    assert db.query(HabitLog).count() == 0
    assert db.get(Habit, habit.id).name == "Read one page"


def test_delete_cascades_logs(service, user, db):
    habit = service.create_habit(user.id, "Read one page")
    service.toggle_log(user.id, habit.id, "2026-10-18")
    service.toggle_log(user.id, habit.id, "2026-10-19")

    service.delete_habit(user.id, habit.id)

    assert db.query(HabitLog).count() == 0
    assert service.fetch_habits_for_user(user.id) == []


def test_reorder_moves_last_to_first(service, user):
    ids = [service.create_habit(user.id, f"Habit {i}").id for i in range(4)]

    moved = list(ids)
    moved.insert(0, moved.pop(3))
    service.reorder(user.id, moved)

    habits = service.fetch_habits_for_user(user.id)
    assert [h["id"] for h in habits] == [ids[3], ids[0], ids[1], ids[2]]
    assert [h["order"] for h in habits] == [0, 1, 2, 3]


def test_reorder_with_foreign_id_writes_nothing(service, user, other_user, db):
    mine = [service.create_habit(user.id, f"Habit {i}").id for i in range(2)]
    theirs = service.create_habit(other_user.id, "Not yours").id

    with pytest.raises(NotFound):
        service.reorder(user.id, [mine[1], theirs, mine[0]])

    db.expire_all()
    assert [h["id"] for h in service.fetch_habits_for_user(user.id)] == mine


def test_reorder_rejects_duplicates(service, user):
    habit = service.create_habit(user.id, "Read one page")
    with pytest.raises(ValidationError):
        service.reorder(user.id, [habit.id, habit.id])


def test_view_includes_streak(service, user):
    habit = service.create_habit(user.id, "Read one page")
    service.toggle_log(user.id, habit.id, "2026-10-17")
    service.toggle_log(user.id, habit.id, "2026-10-18")

    view = next(iter(service.fetch_habits_for_user(user.id, today=date(2026, 10, 19))))
    assert view["streak"] == 2
