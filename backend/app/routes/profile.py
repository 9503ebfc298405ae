from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from app.core.deps import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.routes.auth import UserResponse, user_response
from app.services.messaging import MessagingService, get_messaging_service
from app.services.profile import ProfileService

router = APIRouter()


class NameUpdate(BaseModel):
    name: str


class TimezoneUpdate(BaseModel):
    timezone: str


class PhoneUpdate(BaseModel):
    phone: str


class PhoneVerify(BaseModel):
    code: str


@router.get("", response_model=UserResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    return user_response(current_user)


@router.patch("/name", response_model=UserResponse)
async def update_name(
    payload: NameUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return user_response(ProfileService(db).update_name(current_user, payload.name))


@router.put("/timezone", response_model=UserResponse)
async def update_timezone(
    payload: TimezoneUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return user_response(ProfileService(db).update_timezone(current_user, payload.timezone))


@router.post("/phone", response_model=UserResponse)
async def request_phone_verification(
    payload: PhoneUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    messenger: MessagingService = Depends(get_messaging_service)
):
    """Save the number unverified and send a one-time code to it"""
    user = await ProfileService(db).request_phone_verification(current_user, payload.phone, messenger)
    return user_response(user)


@router.post("/phone/verify", response_model=UserResponse)
async def verify_phone(
    payload: PhoneVerify,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return user_response(ProfileService(db).verify_phone(current_user, payload.code))


@router.delete("/phone", response_model=UserResponse)
async def remove_phone(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return user_response(ProfileService(db).remove_phone(current_user))
