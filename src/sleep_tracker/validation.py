"""Validation for manually entered sleep episodes."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

MAX_EPISODE_LENGTH = timedelta(hours=24)


class ValidationError(Enum):
    FUTURE_DATE_TIME = "Cannot select future dates or times"
    END_BEFORE_START = "End time cannot be before start time"
    TOO_LONG = "Sleep period cannot be longer than 24 hours"
    OVERLAP = "Sleep period overlaps with existing period"

    @property
    def message(self) -> str:
        return self.value


def validate_manual_episode(
    start: datetime,
    end: datetime,
    now: datetime,
    overlaps: Callable[[datetime, datetime], bool],
) -> Optional[ValidationError]:
    """Return the first rule the episode breaks, or None if it is acceptable.

    ``overlaps`` is only consulted once the cheaper checks pass.
    """
    if start > now or end > now:
        return ValidationError.FUTURE_DATE_TIME
    if end < start:
        return ValidationError.END_BEFORE_START
    if end - start > MAX_EPISODE_LENGTH:
        return ValidationError.TOO_LONG
    if overlaps(start, end):
        return ValidationError.OVERLAP
    return None
