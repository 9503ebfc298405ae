"""
Habit Streak Service - Streak calculation over day-keyed completion maps
"""

from datetime import date, timedelta
from typing import Dict, Iterable, Optional
import logging

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"


class HabitStreakCalculator:
    """Calculates streaks from a ``{"YYYY-MM-DD": True}`` completion map"""

    @staticmethod
    def current_streak(completed_dates: Dict[str, bool], as_of_date: Optional[date] = None) -> int:
        """
        Count consecutive completed days walking backwards.

        The walk starts at ``as_of_date`` (defaults to today); when that day is
        not done yet it starts from the day before, so an unfinished today
        does not break a running streak.
        """
        if as_of_date is None:
            as_of_date = date.today()

        current = as_of_date
        if not completed_dates.get(current.strftime(DATE_FORMAT)):
            current -= timedelta(days=1)

        streak = 0
        while completed_dates.get(current.strftime(DATE_FORMAT)):
            streak += 1
            current -= timedelta(days=1)
        return streak

    @staticmethod
    def best_streak(completed_dates: Dict[str, bool]) -> int:
        """Longest run of consecutive completed days ever recorded"""
        days = sorted(HabitStreakCalculator._parse_dates(d for d, done in completed_dates.items() if done))
        if not days:
            return 0

        best = current = 1
        for previous, day in zip(days, days[1:]):
            if day - previous == timedelta(days=1):
                current += 1
                best = max(best, current)
            else:
                current = 1
        return best

    @staticmethod
    def _parse_dates(values: Iterable[str]):
        for value in values:
            try:
                yield date.fromisoformat(value)
            except ValueError:
                logger.warning(f"Skipping malformed log date: {value}")


def get_streak(completed_dates: Dict[str, bool], as_of_date: Optional[date] = None) -> int:
    return HabitStreakCalculator.current_streak(completed_dates, as_of_date)
