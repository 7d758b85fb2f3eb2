"""
pointkeeper.services.honor_service — Honor Award / Update / Delete
===================================================================

An honor is a once-per-day recognition that also puts points in the
ledger.  Each honor owns the point rows tagged with its ``honor_id``:

* ``award_honors`` — batched and idempotent per (participant, date).
  Existing pairs come back as ``already_awarded`` with no writes.
* ``update_honor`` — re-dating an honor re-dates its point rows.
* ``delete_honor`` — removes the honor's point rows, then the honor.

Each call is one transaction.  The unique constraint on
(participant_id, date, organization_id) backs up the existence check:
if a concurrent request commits the same pair between our prefetch and
our insert, the SAVEPOINT catches the ``IntegrityError`` and the pair is
reported as ``already_awarded`` instead of failing the batch.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pointkeeper.constants import (
    HONOR_AWARD_CATEGORY,
    MAX_BATCH_SIZE,
    MAX_REASON_LENGTH,
    parse_calendar_date,
)
from pointkeeper.database.bulk import BulkInsert
from pointkeeper.database.engine import get_session
from pointkeeper.database.models import AdminActionType, Honor, Point
from pointkeeper.engine.policy import resolve_award_value
from pointkeeper.errors import ConflictError, NotFoundError, ValidationError
from pointkeeper.services import roster
from pointkeeper.services.audit import log_admin_action, row_to_dict

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from pointkeeper.context import OperationContext

AWARDED = "awarded"
ALREADY_AWARDED = "already_awarded"

HONOR_COLUMNS = ("participant_id", "organization_id", "date", "reason", "created_by")
HONOR_POINT_COLUMNS = (
    "participant_id", "group_id", "organization_id", "value", "effective_date", "honor_id",
)


# ---------------------------------------------------------------------------
# Request + result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class HonorRequest:
    participant_id: int
    date: date
    reason: str = ""


@dataclass
class HonorAwardResult:
    participant_id: int
    date: date
    action: str
    points: int | None = None
    honor_id: int | None = None

    @property
    def success(self) -> bool:
        return True

    def as_dict(self) -> dict:
        data: dict[str, Any] = {
            "participantId": self.participant_id,
            "date": self.date.isoformat(),
            "success": self.success,
            "action": self.action,
        }
        if self.action == AWARDED:
            data["points"] = self.points
            data["honorId"] = self.honor_id
        return data


@dataclass
class HonorUpdateResult:
    honor: dict
    points_redated: int

    def as_dict(self) -> dict:
        return {"honor": self.honor, "pointsRedated": self.points_redated}


@dataclass
class HonorDeleteResult:
    honor_id: int
    participant_id: int
    date: date
    points_removed: int
    points_value: int

    def as_dict(self) -> dict:
        return {
            "honorId": self.honor_id,
            "participantId": self.participant_id,
            "date": self.date.isoformat(),
            "pointsRemoved": self.points_removed,
            "pointsValue": self.points_value,
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def _validate_reason(reason: Any, field_name: str = "reason") -> str:
    if not isinstance(reason, str):
        raise ValidationError(f"{field_name} must be a string")
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(
            f"{field_name} must be at most {MAX_REASON_LENGTH} characters"
        )
    return reason


def parse_honor_requests(
    raw: Any, *, max_batch_size: int = MAX_BATCH_SIZE
) -> list[HonorRequest]:
    """Validate the raw award payload (a list of honor objects)."""
    if not isinstance(raw, list):
        raise ValidationError("Honors must be an array")
    if not raw:
        raise ValidationError("At least one honor is required")
    if len(raw) > max_batch_size:
        raise ValidationError(
            f"Too many honors in one request ({len(raw)} > {max_batch_size})"
        )

    requests: list[HonorRequest] = []
    for index, item in enumerate(raw):
        if isinstance(item, HonorRequest):
            requests.append(item)
            continue
        if not isinstance(item, dict):
            raise ValidationError(f"honors[{index}] must be an object")
        participant_id = item.get("participant_id", item.get("participantId"))
        if isinstance(participant_id, str) and participant_id.strip().isdigit():
            participant_id = int(participant_id)
        if isinstance(participant_id, bool) or not isinstance(participant_id, int):
            raise ValidationError(f"honors[{index}].participant_id is required")
        if item.get("date") is None:
            raise ValidationError(f"honors[{index}].date is required")
        requests.append(HonorRequest(
            participant_id=participant_id,
            date=parse_calendar_date(item["date"], f"honors[{index}].date"),
            reason=_validate_reason(item.get("reason") or "", f"honors[{index}].reason"),
        ))
    return requests


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _existing_pairs(
    session: Session, organization_id: int, requests: list[HonorRequest]
) -> set[tuple[int, date]]:
    """(participant_id, date) pairs already honored — one query for all."""
    wanted = {(r.participant_id, r.date) for r in requests}
    rows = session.execute(
        select(Honor.participant_id, Honor.date).where(
            Honor.organization_id == organization_id,
            Honor.participant_id.in_(sorted({p for p, _ in wanted})),
            Honor.date.in_(sorted({d for _, d in wanted})),
        )
    ).all()
    return {(row.participant_id, row.date) for row in rows} & wanted


def _pair_taken(session: Session, organization_id: int, request: HonorRequest) -> bool:
    return session.scalar(
        select(Honor.id).where(
            Honor.organization_id == organization_id,
            Honor.participant_id == request.participant_id,
            Honor.date == request.date,
        )
    ) is not None


def _insert_honors(
    session: Session, ctx: OperationContext, requests: list[HonorRequest]
) -> list[int | None]:
    """Insert honors, returning each new id (``None`` where a concurrent
    request already holds the pair).

    Any other integrity failure (a dangling foreign key) propagates.
    """
    rows = BulkInsert(Honor, HONOR_COLUMNS)
    rows.extend(
        (r.participant_id, ctx.organization_id, r.date, r.reason, ctx.actor_id)
        for r in requests
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            return rows.execute_returning(session)
    except IntegrityError:
        # Someone committed one of our pairs after the prefetch; the SAVEPOINT
        # was rolled back, so retry row by row and keep the winners.
        ctx.logger.warning(
            "Honor batch hit the uniqueness constraint; retrying %d row(s) individually",
            len(requests),
        )

    ids: list[int | None] = []
    for r in requests:
        honor = Honor(
            participant_id=r.participant_id,
            organization_id=ctx.organization_id,
            date=r.date,
            reason=r.reason,
            created_by=ctx.actor_id,
        )
        try:
            with session.begin_nested():
                session.add(honor)
                session.flush()
            ids.append(honor.id)
        except IntegrityError:
            if not _pair_taken(session, ctx.organization_id, r):
                raise
            ids.append(None)
    return ids


def _get_honor(session: Session, organization_id: int, honor_id: int) -> Honor:
    honor = session.scalar(
        select(Honor).where(
            Honor.id == honor_id, Honor.organization_id == organization_id
        )
    )
    if honor is None:
        raise NotFoundError(
            f"Honor {honor_id} not found in organization {organization_id}"
        )
    return honor


# ---------------------------------------------------------------------------
# Award
# ---------------------------------------------------------------------------
def award_honors(
    engine: Engine,
    ctx: OperationContext,
    honors: Any,
    *,
    max_batch_size: int = MAX_BATCH_SIZE,
) -> list[HonorAwardResult]:
    """Award honors (and their points) to many participants at once.

    Returns one result per request, in request order.

    Raises
    ------
    ValidationError
        Malformed payload; raised before the transaction opens.
    NotFoundError
        A participant is not in the organization; nothing is written.
    """
    requests = parse_honor_requests(honors, max_batch_size=max_batch_size)
    org_id = ctx.organization_id
    results: list[HonorAwardResult | None] = [None] * len(requests)

    with get_session(engine) as session:
        groups = roster.groups_of(session, org_id, (r.participant_id for r in requests))
        missing = sorted({r.participant_id for r in requests} - groups.keys())
        if missing:
            raise NotFoundError(
                f"Participant(s) {', '.join(map(str, missing))} "
                f"not found in organization {org_id}"
            )

        taken = _existing_pairs(session, org_id, requests)
        pending: list[tuple[int, HonorRequest]] = []
        for index, req in enumerate(requests):
            pair = (req.participant_id, req.date)
            if pair in taken:
                results[index] = HonorAwardResult(req.participant_id, req.date, ALREADY_AWARDED)
            else:
                taken.add(pair)
                pending.append((index, req))

        if pending:
            points = resolve_award_value(session, org_id, HONOR_AWARD_CATEGORY)
            honor_ids = _insert_honors(session, ctx, [req for _, req in pending])

            point_rows = BulkInsert(Point, HONOR_POINT_COLUMNS)
            for (index, req), honor_id in zip(pending, honor_ids):
                if honor_id is None:
                    results[index] = HonorAwardResult(
                        req.participant_id, req.date, ALREADY_AWARDED
                    )
                    continue
                point_rows.add((
                    req.participant_id, groups[req.participant_id], org_id,
                    points, req.date, honor_id,
                ))
                results[index] = HonorAwardResult(
                    req.participant_id, req.date, AWARDED,
                    points=points, honor_id=honor_id,
                )
                ctx.logger.info(
                    "Participant %s awarded honor on %s, points: %+d",
                    req.participant_id, req.date, points,
                )
            point_rows.execute(session)

    return [r for r in results if r is not None]


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------
def update_honor(
    engine: Engine,
    ctx: OperationContext,
    honor_id: int,
    *,
    date: str | None = None,
    reason: str | None = None,
) -> HonorUpdateResult:
    """Change an honor's date and/or reason.

    A date change re-dates every point row tagged with the honor.

    Raises
    ------
    ValidationError
        Neither field given, malformed date, or reason over the limit.
    NotFoundError
        The honor is not in the organization.
    ConflictError
        The participant already holds another honor on the new date.
    """
    if date is None and reason is None:
        raise ValidationError("Provide at least one of date or reason")
    new_date = parse_calendar_date(date) if date is not None else None
    new_reason = _validate_reason(reason) if reason is not None else None
    org_id = ctx.organization_id

    with get_session(engine) as session:
        honor = _get_honor(session, org_id, honor_id)
        before = row_to_dict(honor)
        redated = 0

        if new_date is not None and new_date != honor.date:
            clash = session.scalar(
                select(Honor.id).where(
                    Honor.organization_id == org_id,
                    Honor.participant_id == honor.participant_id,
                    Honor.date == new_date,
                    Honor.id != honor.id,
                )
            )
            if clash is not None:
                raise ConflictError(
                    f"Participant {honor.participant_id} already has an honor "
                    f"on {new_date.isoformat()}"
                )
            honor.date = new_date
            redated = session.execute(
                update(Point)
                .where(Point.honor_id == honor.id, Point.organization_id == org_id)
                .values(effective_date=new_date)
            ).rowcount

        if new_reason is not None:
            honor.reason = new_reason
        honor.updated_by = ctx.actor_id
        honor.updated_at = datetime.now(UTC)
        session.flush()

        after = row_to_dict(honor)
        log_admin_action(
            session,
            ctx,
            action_type=AdminActionType.UPDATE.value,
            target_table="honors",
            target_id=str(honor.id),
            before=before,
            after=after,
        )

    ctx.logger.info("Honor %s updated (%d point row(s) re-dated)", honor_id, redated)
    return HonorUpdateResult(honor=after, points_redated=redated)


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------
def delete_honor(engine: Engine, ctx: OperationContext, honor_id: int) -> HonorDeleteResult:
    """Delete an honor together with every point row it produced.

    Raises
    ------
    NotFoundError
        The honor is not in the organization.
    """
    org_id = ctx.organization_id

    with get_session(engine) as session:
        honor = _get_honor(session, org_id, honor_id)
        points_value = session.scalar(
            select(func.coalesce(func.sum(Point.value), 0)).where(
                Point.honor_id == honor.id
            )
        ) or 0
        removed = session.execute(
            delete(Point).where(Point.honor_id == honor.id)
        ).rowcount

        result = HonorDeleteResult(
            honor_id=honor.id,
            participant_id=honor.participant_id,
            date=honor.date,
            points_removed=removed,
            points_value=int(points_value),
        )
        log_admin_action(
            session,
            ctx,
            action_type=AdminActionType.DELETE.value,
            target_table="honors",
            target_id=str(honor.id),
            before=row_to_dict(honor),
            after=None,
            reason=f"{removed} point row(s) removed",
        )
        session.delete(honor)

    ctx.logger.info(
        "Honor %s deleted: participant %s, date %s, %d point row(s) removed",
        result.honor_id, result.participant_id, result.date, result.points_removed,
    )
    return result
