"""
Reminder Worker - one reminder pass from the command line

For hosts where a system cron is easier to wire up than the HTTP trigger:

    * * * * * cd /srv/minihabits/backend && python -m app.workers.reminder_worker
"""

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.db.base import SessionLocal
from app.services.messaging import MessagingService
from app.services.reminder_dispatch import ReminderDispatcher

logger = logging.getLogger(__name__)


async def run_once(now: Optional[datetime] = None) -> Dict[str, Any]:
    messenger = MessagingService()
    db = SessionLocal()
    try:
        return await ReminderDispatcher(db, messenger).run(now)
    finally:
        db.close()
        await messenger.close()


def _parse_now(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Send due habit reminders once")
    parser.add_argument("--now", type=_parse_now, default=None,
                        help="ISO timestamp to evaluate instead of the current time (UTC if naive)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    result = asyncio.run(run_once(args.now))
    print(json.dumps(result))
    return 1 if result["errors"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
