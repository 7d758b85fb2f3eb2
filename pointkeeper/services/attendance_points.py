"""
pointkeeper.services.attendance_points — Attendance Status Adjustments
=======================================================================

The attendance subsystem owns the attendance table; after it changes a
participant's status for a day it reports the change here, and the
ledger records the difference between the two statuses under the
organization's ``attendance`` rules.  With the default rules
``absent → present`` is worth ``+1`` and the reverse ``-1``.

Change shape::

    {"participant_id": 3, "date": "2024-01-10",
     "previous_status": "absent", "status": "present"}

``previous_status`` is omitted (or null) for a first mark.  Changes whose
delta is zero write nothing.  Adjustment rows carry the participant's
current group and the attendance date as ``effective_date``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

from pointkeeper.constants import MAX_BATCH_SIZE, parse_calendar_date
from pointkeeper.database.bulk import BulkInsert
from pointkeeper.database.engine import get_session
from pointkeeper.database.models import AttendanceStatus, Point
from pointkeeper.engine.policy import attendance_point_delta, load_point_rules
from pointkeeper.errors import NotFoundError, ValidationError
from pointkeeper.services import roster
from pointkeeper.services.distributor import POINT_COLUMNS

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from pointkeeper.context import OperationContext

STATUSES = tuple(s.value for s in AttendanceStatus)


@dataclass(frozen=True)
class AttendanceChange:
    participant_id: int
    date: date
    status: str
    previous_status: str | None = None


@dataclass
class AttendanceAdjustment:
    participant_id: int
    date: date
    previous_status: str | None
    status: str
    points: int

    def as_dict(self) -> dict:
        return {
            "participantId": self.participant_id,
            "date": self.date.isoformat(),
            "previousStatus": self.previous_status,
            "newStatus": self.status,
            "points": self.points,
        }


def _status(value: Any, field_name: str, *, required: bool) -> str | None:
    if value is None and not required:
        return None
    if value not in STATUSES:
        raise ValidationError(f"{field_name} must be one of {', '.join(STATUSES)}")
    return value


def parse_changes(raw: Any, *, max_batch_size: int = MAX_BATCH_SIZE) -> list[AttendanceChange]:
    if not isinstance(raw, list):
        raise ValidationError("Attendance changes must be an array")
    if len(raw) > max_batch_size:
        raise ValidationError(
            f"Too many attendance changes in one request ({len(raw)} > {max_batch_size})"
        )

    changes: list[AttendanceChange] = []
    for index, item in enumerate(raw):
        if isinstance(item, AttendanceChange):
            changes.append(item)
            continue
        if not isinstance(item, dict):
            raise ValidationError(f"changes[{index}] must be an object")
        participant_id = item.get("participant_id", item.get("participantId"))
        if isinstance(participant_id, str) and participant_id.strip().isdigit():
            participant_id = int(participant_id)
        if isinstance(participant_id, bool) or not isinstance(participant_id, int):
            raise ValidationError(f"changes[{index}].participant_id is required")
        if item.get("date") is None:
            raise ValidationError(f"changes[{index}].date is required")
        changes.append(AttendanceChange(
            participant_id=participant_id,
            date=parse_calendar_date(item["date"], f"changes[{index}].date"),
            status=_status(item.get("status"), f"changes[{index}].status", required=True),
            previous_status=_status(
                item.get("previous_status", item.get("previousStatus")),
                f"changes[{index}].previous_status",
                required=False,
            ),
        ))
    return changes


def apply_attendance_changes(
    engine: Engine,
    ctx: OperationContext,
    changes: Any,
    *,
    max_batch_size: int = MAX_BATCH_SIZE,
) -> list[AttendanceAdjustment]:
    """Write the point adjustments for a batch of attendance status changes.

    Returns the adjustments that produced a ledger row, in request order.

    Raises
    ------
    ValidationError
        Malformed payload or unknown status; raised before the transaction
        opens.
    NotFoundError
        A participant is not in the organization; nothing is written.
    """
    parsed = parse_changes(changes, max_batch_size=max_batch_size)
    org_id = ctx.organization_id
    adjustments: list[AttendanceAdjustment] = []
    if not parsed:
        return adjustments

    with get_session(engine) as session:
        groups = roster.groups_of(session, org_id, (c.participant_id for c in parsed))
        missing = sorted({c.participant_id for c in parsed} - groups.keys())
        if missing:
            raise NotFoundError(
                f"Participant(s) {', '.join(map(str, missing))} "
                f"not found in organization {org_id}"
            )

        rules = load_point_rules(session, org_id)
        rows = BulkInsert(Point, POINT_COLUMNS)
        for change in parsed:
            delta = attendance_point_delta(change.previous_status, change.status, rules)
            if not delta:
                continue
            rows.add((change.participant_id, groups[change.participant_id], org_id,
                      delta, change.date))
            adjustments.append(AttendanceAdjustment(
                change.participant_id, change.date, change.previous_status,
                change.status, delta,
            ))
            ctx.logger.info(
                "Participant %s: %s -> %s on %s, points: %+d",
                change.participant_id, change.previous_status or "none",
                change.status, change.date, delta,
            )
        ctx.logger.info(
            "Recording %d attendance adjustment(s) for %d change(s)", len(rows), len(parsed)
        )
        rows.execute(session)

    return adjustments
