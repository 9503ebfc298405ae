from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Response
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, Field
from app.core.auth import create_access_token, verify_password, get_password_hash
from app.core.deps import get_current_user, get_current_user_optional
from app.core.config import settings
from app.db.session import get_db
from app.models.user import User
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: Optional[str] = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    phone_verified: bool = False
    timezone: str
    created_at: Optional[str] = None


def user_response(user: User) -> UserResponse:
    return UserResponse(
        id=str(user.id),
        email=user.email,
        name=user.name,
        phone=user.phone,
        phone_verified=bool(user.phone_verified),
        timezone=user.timezone or settings.default_timezone,
        created_at=user.created_at.isoformat() if user.created_at else None
    )


def _set_session_cookie(response: Response, user: User):
    access_token = create_access_token(data={"sub": str(user.id)})
    # Prepare cookie parameters, avoid setting invalid empty domain
    cookie_kwargs = {
        "key": "access_token",
        "value": access_token,
        "secure": settings.cookie_secure,
        "httponly": True,
        "samesite": settings.cookie_samesite,
        "max_age": settings.jwt_expire_hours * 3600,
    }
    if settings.cookie_domain:
        cookie_kwargs["domain"] = settings.cookie_domain
    response.set_cookie(**cookie_kwargs)


@router.post("/register", response_model=UserResponse)
async def register(user_data: UserCreate, response: Response, db: Session = Depends(get_db)):
    """Create a new account and log it in"""

    existing_user = db.query(User).filter(User.email == user_data.email).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists."
        )

    name = (user_data.name or "").strip() or user_data.email.split("@")[0]
    user = User(
        email=user_data.email,
        password_hash=get_password_hash(user_data.password),
        name=name
    )

    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id}")

    # Auto login after register
    _set_session_cookie(response, user)
    return user_response(user)


@router.post("/login", response_model=UserResponse)
async def login(user_data: UserLogin, response: Response, db: Session = Depends(get_db)):
    """Authenticate user and set JWT cookie"""

    user = db.query(User).filter(User.email == user_data.email).first()
    if not user or not verify_password(user_data.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials."
        )

    _set_session_cookie(response, user)
    return user_response(user)


@router.post("/logout")
async def logout(response: Response):
    """Logout user by clearing JWT cookie"""

    # Mirror cookie deletion parameters; omit domain if unset/empty
    delete_kwargs = {
        "key": "access_token",
        "secure": settings.cookie_secure,
        "httponly": True,
        "samesite": settings.cookie_samesite,
    }
    if settings.cookie_domain:
        delete_kwargs["domain"] = settings.cookie_domain
    response.delete_cookie(**delete_kwargs)

    return {"message": "Successfully logged out"}


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    return user_response(current_user)


@router.get("/check")
async def check_auth(current_user: Optional[User] = Depends(get_current_user_optional)):
    """Check if user is authenticated"""

    if current_user:
        return {
            "authenticated": True,
            "user": {
                "id": str(current_user.id),
                "email": current_user.email
            }
        }
    return {"authenticated": False}
