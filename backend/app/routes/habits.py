from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Dict, List, Optional
from app.core.deps import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.services.ai_coach import ANALYSIS_DAYS, build_analysis_context
from app.services.habit_logs import HabitLogService, habit_to_view
from app.services.timezones import local_now

router = APIRouter()


class HabitCreate(BaseModel):
    name: str


class HabitRename(BaseModel):
    name: str


class ReminderTimeUpdate(BaseModel):
    reminder_time: Optional[str] = None


class LogDoneUpdate(BaseModel):
    done: bool


class NoteUpdate(BaseModel):
    note: str = ""


class HabitOrderUpdate(BaseModel):
    ids: List[str]


class HabitResponse(BaseModel):
    id: str
    name: str
    order: int
    reminder_time: Optional[str] = None
    completed_dates: Dict[str, bool] = {}
    notes: Dict[str, str] = {}
    streak: int = 0
    best_streak: int = 0


class LogStateResponse(BaseModel):
    habit_id: str
    date: str
    done: bool


def _user_today(user: User):
    return local_now(user.timezone).date()


@router.get("", response_model=List[HabitResponse])
async def list_habits(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """All of the caller's habits in display order with their day-keyed view"""
    return HabitLogService(db).fetch_habits_for_user(current_user.id, _user_today(current_user))


@router.post("", response_model=HabitResponse, status_code=status.HTTP_201_CREATED)
async def create_habit(
    payload: HabitCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    habit = HabitLogService(db).create_habit(current_user.id, payload.name)
    return habit_to_view(habit, _user_today(current_user))


@router.put("/order", status_code=status.HTTP_204_NO_CONTENT)
async def reorder_habits(
    payload: HabitOrderUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    HabitLogService(db).reorder(current_user.id, payload.ids)


@router.get("/analysis-context")
async def analysis_context(
    days: int = Query(ANALYSIS_DAYS, ge=1, le=90),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Plain-text history of recent days, ready to send to the analysis endpoint"""
    today = _user_today(current_user)
    habits = HabitLogService(db).fetch_habits_for_user(current_user.id, today)
    return {"context": build_analysis_context(habits, today, days)}


@router.patch("/{habit_id}", response_model=HabitResponse)
async def rename_habit(
    habit_id: str,
    payload: HabitRename,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    habit = HabitLogService(db).rename_habit(current_user.id, habit_id, payload.name)
    return habit_to_view(habit, _user_today(current_user))


@router.delete("/{habit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_habit(
    habit_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    HabitLogService(db).delete_habit(current_user.id, habit_id)


@router.put("/{habit_id}/reminder", response_model=HabitResponse)
async def set_reminder_time(
    habit_id: str,
    payload: ReminderTimeUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    habit = HabitLogService(db).set_reminder_time(current_user.id, habit_id, payload.reminder_time)
    return habit_to_view(habit, _user_today(current_user))


@router.post("/{habit_id}/logs/{day}/toggle", response_model=LogStateResponse)
async def toggle_log(
    habit_id: str,
    day: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Flip completion for a day; toggling off also drops that day's note"""
    done = HabitLogService(db).toggle_log(current_user.id, habit_id, day)
    return LogStateResponse(habit_id=habit_id, date=day, done=done)


@router.put("/{habit_id}/logs/{day}", response_model=LogStateResponse)
async def set_log_done(
    habit_id: str,
    day: str,
    payload: LogDoneUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    done = HabitLogService(db).set_done(current_user.id, habit_id, day, payload.done)
    return LogStateResponse(habit_id=habit_id, date=day, done=done)


@router.put("/{habit_id}/logs/{day}/note")
async def upsert_note(
    habit_id: str,
    day: str,
    payload: NoteUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    log = HabitLogService(db).upsert_note(current_user.id, habit_id, day, payload.note)
    return {"habit_id": habit_id, "date": log.date, "note": log.note or "", "done": True}
