"""
pointkeeper.services.distributor — Batch Point Distribution
============================================================

Applies a list of point mutations for one organization in a single
transaction.  Either every mutation lands or none does: an unknown target
anywhere in the list rolls back the rows already written for earlier
mutations.

Mutation shape (the wire aliases sent by the points screen are accepted
too: ``type``, ``id``, ``points``, ``date``)::

    {"kind": "group", "target_id": 4, "value": 5, "effective_date": "2024-01-10"}
    {"kind": "participant", "target_id": 17, "value": -2}

Group mutations write one group-level row (``participant_id`` NULL) plus
one row per eligible member, each carrying the full value.  When a date
is given and attendance was taken that day, only members marked present
or late are eligible; when no attendance exists for the day, everyone is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pointkeeper.constants import MAX_BATCH_SIZE, parse_calendar_date
from pointkeeper.database.bulk import BulkInsert
from pointkeeper.database.engine import get_session
from pointkeeper.database.models import Point
from pointkeeper.errors import NotFoundError, ValidationError
from pointkeeper.services import roster

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from pointkeeper.context import OperationContext

MUTATION_KINDS = ("group", "participant")

POINT_COLUMNS = (
    "participant_id", "group_id", "organization_id", "value", "effective_date",
)


# ---------------------------------------------------------------------------
# Mutation + result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PointMutation:
    kind: str
    target_id: int
    value: int
    effective_date: date | None = None


@dataclass
class MemberTotal:
    id: int
    total_points: int

    def as_dict(self) -> dict:
        return {"id": self.id, "totalPoints": self.total_points}


@dataclass
class GroupPointsResult:
    """Outcome of one group mutation.

    ``total_points`` is the group-level tally only; ``member_ids`` is the
    full roster and ``member_totals`` covers the members who got a row.
    """

    id: int
    total_points: int
    member_ids: list[int] = field(default_factory=list)
    member_totals: list[MemberTotal] = field(default_factory=list)
    skipped_participants: list[int] = field(default_factory=list)
    date: date | None = None

    type = "group"

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_participants)

    def as_dict(self) -> dict:
        return {
            "type": self.type,
            "id": self.id,
            "totalPoints": self.total_points,
            "memberIds": list(self.member_ids),
            "memberTotals": [m.as_dict() for m in self.member_totals],
            "skippedCount": self.skipped_count,
            "skippedParticipants": list(self.skipped_participants),
            "date": self.date.isoformat() if self.date else None,
        }


@dataclass
class ParticipantPointsResult:
    id: int
    total_points: int

    type = "participant"

    def as_dict(self) -> dict:
        return {"type": self.type, "id": self.id, "totalPoints": self.total_points}


# ---------------------------------------------------------------------------
# Validation: runs before any transaction opens
# ---------------------------------------------------------------------------
def _pick(item: dict, *keys: str) -> Any:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _as_int(value: Any, field_name: str, index: int) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"mutations[{index}].{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"mutations[{index}].{field_name} must be an integer")


def parse_mutations(
    raw: Any, *, max_batch_size: int = MAX_BATCH_SIZE
) -> list[PointMutation]:
    """Validate the raw request payload into :class:`PointMutation` objects."""
    if not isinstance(raw, list):
        raise ValidationError("Updates must be an array")
    if len(raw) > max_batch_size:
        raise ValidationError(
            f"Too many updates in one batch ({len(raw)} > {max_batch_size})"
        )

    mutations: list[PointMutation] = []
    for index, item in enumerate(raw):
        if isinstance(item, PointMutation):
            mutations.append(item)
            continue
        if not isinstance(item, dict):
            raise ValidationError(f"mutations[{index}] must be an object")

        kind = _pick(item, "kind", "type")
        if kind not in MUTATION_KINDS:
            raise ValidationError(
                f"mutations[{index}].kind must be one of {', '.join(MUTATION_KINDS)}"
            )
        target_id = _pick(item, "target_id", "targetId", "id")
        if target_id is None:
            raise ValidationError(f"mutations[{index}].target_id is required")
        value = _pick(item, "value", "points")
        if value is None:
            raise ValidationError(f"mutations[{index}].value is required")
        raw_date = _pick(item, "effective_date", "effectiveDate", "date")

        mutations.append(PointMutation(
            kind=kind,
            target_id=_as_int(target_id, "target_id", index),
            value=_as_int(value, "value", index),
            effective_date=(
                parse_calendar_date(raw_date, f"mutations[{index}].effective_date")
                if raw_date is not None else None
            ),
        ))
    return mutations


# ---------------------------------------------------------------------------
# Ledger sums
# ---------------------------------------------------------------------------
def participant_total(session: Session, organization_id: int, participant_id: int) -> int:
    return session.scalar(
        select(func.coalesce(func.sum(Point.value), 0)).where(
            Point.organization_id == organization_id,
            Point.participant_id == participant_id,
        )
    ) or 0


def group_level_total(session: Session, organization_id: int, group_id: int) -> int:
    return session.scalar(
        select(func.coalesce(func.sum(Point.value), 0)).where(
            Point.organization_id == organization_id,
            Point.group_id == group_id,
            Point.participant_id.is_(None),
        )
    ) or 0


def participant_totals(
    session: Session, organization_id: int, participant_ids: list[int]
) -> dict[int, int]:
    """Live totals for many participants in one grouped query."""
    if not participant_ids:
        return {}
    rows = session.execute(
        select(Point.participant_id, func.sum(Point.value).label("total"))
        .where(
            Point.organization_id == organization_id,
            Point.participant_id.in_(participant_ids),
        )
        .group_by(Point.participant_id)
    ).all()
    return {row.participant_id: int(row.total) for row in rows}


# ---------------------------------------------------------------------------
# Per-kind application
# ---------------------------------------------------------------------------
def _apply_group(
    session: Session, ctx: OperationContext, mutation: PointMutation, today: date
) -> GroupPointsResult:
    org_id = ctx.organization_id
    group_id = mutation.target_id
    if roster.get_group(session, org_id, group_id) is None:
        raise NotFoundError(f"Group {group_id} not found in organization {org_id}")

    roster_ids = roster.list_members(session, org_id, group_id)
    eligible = list(roster_ids)
    skipped: list[int] = []

    day = mutation.effective_date
    if day is not None and roster_ids:
        if roster.any_attendance_recorded(session, org_id, day):
            present = roster.eligible_participants(session, org_id, day, roster_ids)
            eligible = [pid for pid in roster_ids if pid in present]
            skipped = [pid for pid in roster_ids if pid not in present]
            ctx.logger.info(
                "Group %s on %s: %d eligible, %d skipped (absent/excused)",
                group_id, day, len(eligible), len(skipped),
            )
        else:
            ctx.logger.info(
                "Group %s on %s: no attendance recorded, awarding all %d members",
                group_id, day, len(roster_ids),
            )

    effective = day or today
    rows = BulkInsert(Point, POINT_COLUMNS)
    rows.add((None, group_id, org_id, mutation.value, effective))
    rows.extend(
        (pid, group_id, org_id, mutation.value, effective) for pid in eligible
    )
    rows.execute(session)

    totals = participant_totals(session, org_id, eligible)
    return GroupPointsResult(
        id=group_id,
        total_points=group_level_total(session, org_id, group_id),
        member_ids=roster_ids,
        member_totals=[MemberTotal(pid, totals.get(pid, 0)) for pid in eligible],
        skipped_participants=skipped,
        date=day,
    )


def _apply_participant(
    session: Session, ctx: OperationContext, mutation: PointMutation, today: date
) -> ParticipantPointsResult:
    org_id = ctx.organization_id
    participant_id = mutation.target_id
    belongs, group_id = roster.lookup_participant(session, org_id, participant_id)
    if not belongs:
        raise NotFoundError(
            f"Participant {participant_id} not found in organization {org_id}"
        )

    session.add(Point(
        participant_id=participant_id,
        group_id=group_id,
        organization_id=org_id,
        value=mutation.value,
        effective_date=mutation.effective_date or today,
    ))
    session.flush()

    return ParticipantPointsResult(
        id=participant_id,
        total_points=participant_total(session, org_id, participant_id),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def apply_batch(
    engine: Engine,
    ctx: OperationContext,
    mutations: Any,
    *,
    max_batch_size: int = MAX_BATCH_SIZE,
) -> list[GroupPointsResult | ParticipantPointsResult]:
    """Apply every mutation atomically and return one result per mutation.

    Raises
    ------
    ValidationError
        Malformed payload; raised before the transaction opens.
    NotFoundError
        A target is not in the organization; the whole batch rolls back.
    InternalError
        Storage failure; the whole batch rolls back.
    """
    parsed = parse_mutations(mutations, max_batch_size=max_batch_size)
    today = datetime.now(UTC).date()

    results: list[GroupPointsResult | ParticipantPointsResult] = []
    with get_session(engine) as session:
        for mutation in parsed:
            if mutation.kind == "group":
                results.append(_apply_group(session, ctx, mutation, today))
            else:
                results.append(_apply_participant(session, ctx, mutation, today))

    ctx.logger.info("Applied %d point mutation(s)", len(results))
    return results
