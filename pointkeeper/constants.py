"""
pointkeeper.constants — Shared Constants & Helpers
===================================================

Single source of truth for ledger limits, default point rules, and the
calendar-date parser used by every write path.
"""

from __future__ import annotations

import re
from datetime import date, datetime

from pointkeeper.database.models import AttendanceStatus
from pointkeeper.errors import ValidationError

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------
MAX_BATCH_SIZE = 500
MAX_REASON_LENGTH = 1000
DEFAULT_LEADERBOARD_LIMIT = 10
MAX_LEADERBOARD_LIMIT = 500

# Attendance statuses that keep a member eligible for a dated group award
ELIGIBLE_ATTENDANCE_STATUSES: frozenset[str] = frozenset(
    {AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value}
)

# ---------------------------------------------------------------------------
# Point rules
# ---------------------------------------------------------------------------
POINT_RULES_KEY = "point_system_rules"
HONOR_AWARD_CATEGORY = "honors.award"
DEFAULT_HONOR_AWARD = 5

DEFAULT_POINT_RULES: dict = {
    "attendance": {
        "present": {"label": "present", "points": 1},
        "absent": {"label": "absent", "points": 0},
        "late": {"label": "late", "points": 0},
        "excused": {"label": "excused", "points": 0},
    },
    "honors": {"award": DEFAULT_HONOR_AWARD},
    "badges": {"earn": 5, "level_up": 10},
}


# ---------------------------------------------------------------------------
# Date parsing
# ---------------------------------------------------------------------------
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_calendar_date(value: object, field: str = "date") -> date:
    """Parse a strict ``YYYY-MM-DD`` string (or pass a :class:`date` through).

    Raises :class:`ValidationError` for anything else, including
    impossible dates such as ``2024-02-30``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        raise ValidationError(f"{field} must be a YYYY-MM-DD date, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} is not a valid calendar date: {value!r}")
