from datetime import datetime, timezone
from typing import Optional
import logging

import pytz

from app.core.config import settings

logger = logging.getLogger(__name__)


def is_valid_timezone(name: str) -> bool:
    return name in pytz.all_timezones_set


def resolve_timezone(name: Optional[str]):
    """Return the pytz zone for ``name``, falling back to the configured default"""
    if name:
        try:
            return pytz.timezone(name)
        except pytz.UnknownTimeZoneError:
            logger.warning(f"Unknown timezone '{name}', using {settings.default_timezone}")
    return pytz.timezone(settings.default_timezone)


def local_now(tz_name: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Render an instant (default: the current one) in the user's timezone"""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(resolve_timezone(tz_name))
