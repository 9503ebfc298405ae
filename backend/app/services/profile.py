"""
Profile Service - display name, timezone and phone verification

Phone verification stores a 6-digit one-time code with an expiry on the user
row. ``phone_otp`` and ``phone_otp_expiry`` are always set and cleared
together, and a pending code implies ``phone`` is set and unverified.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import re
import secrets

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import Conflict, ExternalServiceError, ValidationError
from app.models.user import User
from app.services.messaging import MessagingService
from app.services.timezones import is_valid_timezone

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^[0-9]{10,15}$")
OTP_RE = re.compile(r"^[0-9]{6}$")
MAX_DISPLAY_NAME_LENGTH = 100


def _utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ProfileService:
    def __init__(self, db: Session):
        self.db = db

    def update_name(self, user: User, name: str) -> User:
        name = (name or "").strip()
        if not name or len(name) > MAX_DISPLAY_NAME_LENGTH:
            raise ValidationError(f"Name must be 1-{MAX_DISPLAY_NAME_LENGTH} characters")
        user.name = name
        self.db.commit()
        return user

    def update_timezone(self, user: User, tz_name: str) -> User:
        if not tz_name or not is_valid_timezone(tz_name):
            raise ValidationError(f"Unknown timezone: {tz_name}")
        user.timezone = tz_name
        self.db.commit()
        logger.info(f"User {user.id} timezone set to {tz_name}")
        return user

    async def request_phone_verification(
        self,
        user: User,
        phone: str,
        messenger: MessagingService,
        now: Optional[datetime] = None
    ) -> User:
        """Store ``phone`` unverified, issue a code and send it through the gateway"""
        phone = (phone or "").strip()
        if not PHONE_RE.match(phone):
            raise ValidationError("Phone must be 10-15 digits")

        now = now or datetime.now(timezone.utc)
        code = f"{secrets.randbelow(10 ** 6):06d}"

        user.phone = phone
        user.phone_verified = False
        user.phone_otp = code
        user.phone_otp_expiry = now + timedelta(minutes=settings.otp_expiry_minutes)
        self.db.commit()

        try:
            await messenger.send(
                phone,
                f"Your {settings.app_name} verification code is {code}. "
                f"It expires in {settings.otp_expiry_minutes} minutes."
            )
        except ExternalServiceError:
            user.phone_otp = None
            user.phone_otp_expiry = None
            self.db.commit()
            logger.error(f"Could not deliver verification code to user {user.id}")
            raise

        logger.info(f"Verification code issued for user {user.id}")
        return user

    def verify_phone(self, user: User, code: str, now: Optional[datetime] = None) -> User:
        code = (code or "").strip()
        if not OTP_RE.match(code):
            raise ValidationError("Code must be 6 digits")

        if user.phone_otp is None:
            if user.phone_verified:
                raise Conflict("Phone already verified")
            raise Conflict("No verification pending")

        now = now or datetime.now(timezone.utc)
        if _utc(user.phone_otp_expiry) < now:
            user.phone_otp = None
            user.phone_otp_expiry = None
            self.db.commit()
            raise Conflict("Code expired")

        if not secrets.compare_digest(code, user.phone_otp):
            raise ValidationError("Incorrect code")

        user.phone_verified = True
        user.phone_otp = None
        user.phone_otp_expiry = None
        self.db.commit()
        logger.info(f"Phone verified for user {user.id}")
        return user

    def remove_phone(self, user: User) -> User:
        user.phone = None
        user.phone_verified = False
        user.phone_otp = None
        user.phone_otp_expiry = None
        self.db.commit()
        return user
