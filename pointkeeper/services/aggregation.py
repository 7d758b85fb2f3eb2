"""
pointkeeper.services.aggregation — Read-Only Ledger Aggregations
=================================================================

Leaderboards, reports, group details and honor listings.  Every total is
a fresh ``SUM(points.value)`` — nothing here writes, and there is no
stored counter to fall out of sync.  Sums are computed in subqueries
before joining so a participant with several honors is not counted
several times.

Group totals come in two flavours:

* ``group_points`` — group-level rows only (``participant_id IS NULL``),
  the figure the batch distributor reports back.
* ``total_points`` — every row tagged with the group, member rows and
  honor points included.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from pointkeeper.constants import (
    DEFAULT_LEADERBOARD_LIMIT,
    MAX_LEADERBOARD_LIMIT,
    parse_calendar_date,
)
from pointkeeper.database.models import (
    Group,
    Honor,
    Participant,
    ParticipantGroup,
    ParticipantOrganization,
    Point,
)
from pointkeeper.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

LEADERBOARD_SCOPES = ("individual", "group")


# ---------------------------------------------------------------------------
# Subqueries
# ---------------------------------------------------------------------------
def _participant_sums(organization_id: int):
    return (
        select(Point.participant_id, func.sum(Point.value).label("total"))
        .where(Point.organization_id == organization_id, Point.participant_id.is_not(None))
        .group_by(Point.participant_id)
        .subquery()
    )


def _group_sums(organization_id: int, *, group_level_only: bool):
    stmt = select(Point.group_id, func.sum(Point.value).label("total")).where(
        Point.organization_id == organization_id, Point.group_id.is_not(None)
    )
    if group_level_only:
        stmt = stmt.where(Point.participant_id.is_(None))
    return stmt.group_by(Point.group_id).subquery()


def _honor_counts(organization_id: int):
    return (
        select(Honor.participant_id, func.count(Honor.id).label("honors"))
        .where(Honor.organization_id == organization_id)
        .group_by(Honor.participant_id)
        .subquery()
    )


def _member_counts(organization_id: int):
    return (
        select(ParticipantGroup.group_id, func.count().label("members"))
        .where(ParticipantGroup.organization_id == organization_id)
        .group_by(ParticipantGroup.group_id)
        .subquery()
    )


def _participants_in_org(organization_id: int, *columns):
    """``SELECT`` over the organization's participants with their group
    joined in (left join — ungrouped participants are kept)."""
    return (
        select(*columns)
        .select_from(Participant)
        .join(
            ParticipantOrganization,
            and_(
                ParticipantOrganization.participant_id == Participant.id,
                ParticipantOrganization.organization_id == organization_id,
            ),
        )
        .outerjoin(
            ParticipantGroup,
            and_(
                ParticipantGroup.participant_id == Participant.id,
                ParticipantGroup.organization_id == organization_id,
            ),
        )
        .outerjoin(Group, Group.id == ParticipantGroup.group_id)
    )


def _check_limit(limit: Any) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit must be a positive integer")
    return min(limit, MAX_LEADERBOARD_LIMIT)


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
def leaderboard(
    engine: Engine,
    organization_id: int,
    scope: str = "individual",
    limit: int = DEFAULT_LEADERBOARD_LIMIT,
) -> list[dict]:
    """Top participants or groups by total points (ties broken by id)."""
    if scope not in LEADERBOARD_SCOPES:
        raise ValidationError(f"scope must be one of {', '.join(LEADERBOARD_SCOPES)}")
    limit = _check_limit(limit)

    with Session(engine) as session:
        if scope == "group":
            return _group_leaderboard(session, organization_id, limit)

        sums = _participant_sums(organization_id)
        total = func.coalesce(sums.c.total, 0).label("total_points")
        stmt = (
            _participants_in_org(
                organization_id,
                Participant.id,
                Participant.first_name,
                Participant.last_name,
                Group.name.label("group_name"),
                total,
            )
            .outerjoin(sums, sums.c.participant_id == Participant.id)
            .order_by(total.desc(), Participant.id)
            .limit(limit)
        )
        return [
            {
                "rank": rank,
                "id": row.id,
                "first_name": row.first_name,
                "last_name": row.last_name,
                "group_name": row.group_name,
                "total_points": int(row.total_points),
            }
            for rank, row in enumerate(session.execute(stmt), start=1)
        ]


def _group_leaderboard(session: Session, organization_id: int, limit: int) -> list[dict]:
    tagged = _group_sums(organization_id, group_level_only=False)
    level = _group_sums(organization_id, group_level_only=True)
    members = _member_counts(organization_id)
    total = func.coalesce(tagged.c.total, 0).label("total_points")
    stmt = (
        select(
            Group.id,
            Group.name,
            total,
            func.coalesce(level.c.total, 0).label("group_points"),
            func.coalesce(members.c.members, 0).label("member_count"),
        )
        .select_from(Group)
        .outerjoin(tagged, tagged.c.group_id == Group.id)
        .outerjoin(level, level.c.group_id == Group.id)
        .outerjoin(members, members.c.group_id == Group.id)
        .where(Group.organization_id == organization_id)
        .order_by(total.desc(), Group.id)
        .limit(limit)
    )
    return [
        {
            "rank": rank,
            "id": row.id,
            "name": row.name,
            "total_points": int(row.total_points),
            "group_points": int(row.group_points),
            "member_count": int(row.member_count),
        }
        for rank, row in enumerate(session.execute(stmt), start=1)
    ]


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------
def report(engine: Engine, organization_id: int) -> list[dict]:
    """Every participant with group, total points and honors count."""
    sums = _participant_sums(organization_id)
    honors = _honor_counts(organization_id)
    total = func.coalesce(sums.c.total, 0).label("total_points")
    stmt = (
        _participants_in_org(
            organization_id,
            Participant.id,
            Participant.first_name,
            Participant.last_name,
            Group.name.label("group_name"),
            total,
            func.coalesce(honors.c.honors, 0).label("honors_count"),
        )
        .outerjoin(sums, sums.c.participant_id == Participant.id)
        .outerjoin(honors, honors.c.participant_id == Participant.id)
        .order_by(total.desc(), Participant.first_name, Participant.last_name, Participant.id)
    )
    with Session(engine) as session:
        return [
            {
                "id": row.id,
                "first_name": row.first_name,
                "last_name": row.last_name,
                "group_name": row.group_name,
                "total_points": int(row.total_points),
                "honors_count": int(row.honors_count),
            }
            for row in session.execute(stmt)
        ]


def points_data(engine: Engine, organization_id: int) -> dict:
    """All groups (group-level totals) and participants (personal totals)."""
    level = _group_sums(organization_id, group_level_only=True)
    sums = _participant_sums(organization_id)
    with Session(engine) as session:
        groups = session.execute(
            select(Group.id, Group.name, func.coalesce(level.c.total, 0).label("total_points"))
            .select_from(Group)
            .outerjoin(level, level.c.group_id == Group.id)
            .where(Group.organization_id == organization_id)
            .order_by(Group.name, Group.id)
        ).all()
        participants = session.execute(
            _participants_in_org(
                organization_id,
                Participant.id,
                Participant.first_name,
                Participant.last_name,
                ParticipantGroup.group_id,
                func.coalesce(sums.c.total, 0).label("total_points"),
            )
            .outerjoin(sums, sums.c.participant_id == Participant.id)
            .order_by(Participant.first_name, Participant.id)
        ).all()
    return {
        "groups": [
            {"id": g.id, "name": g.name, "total_points": int(g.total_points)}
            for g in groups
        ],
        "participants": [
            {
                "id": p.id,
                "first_name": p.first_name,
                "last_name": p.last_name,
                "group_id": p.group_id,
                "total_points": int(p.total_points),
            }
            for p in participants
        ],
    }


def group_detail(engine: Engine, organization_id: int, group_id: int) -> dict:
    """One group with both totals and its members' personal totals."""
    sums = _participant_sums(organization_id)
    with Session(engine) as session:
        group = session.scalar(
            select(Group).where(Group.id == group_id, Group.organization_id == organization_id)
        )
        if group is None:
            raise NotFoundError(f"Group {group_id} not found in organization {organization_id}")

        group_points = _sum(session, organization_id, Point.group_id == group_id,
                            Point.participant_id.is_(None))
        total_points = _sum(session, organization_id, Point.group_id == group_id)

        total = func.coalesce(sums.c.total, 0).label("total_points")
        members = session.execute(
            select(
                Participant.id,
                Participant.first_name,
                Participant.last_name,
                ParticipantGroup.is_leader,
                ParticipantGroup.is_second_leader,
                total,
            )
            .select_from(Participant)
            .join(ParticipantGroup, ParticipantGroup.participant_id == Participant.id)
            .outerjoin(sums, sums.c.participant_id == Participant.id)
            .where(
                ParticipantGroup.organization_id == organization_id,
                ParticipantGroup.group_id == group_id,
            )
            .order_by(total.desc(), Participant.id)
        ).all()

        return {
            "id": group.id,
            "name": group.name,
            "group_points": group_points,
            "total_points": total_points,
            "member_count": len(members),
            "members": [
                {
                    "id": m.id,
                    "first_name": m.first_name,
                    "last_name": m.last_name,
                    "is_leader": bool(m.is_leader),
                    "is_second_leader": bool(m.is_second_leader),
                    "total_points": int(m.total_points),
                }
                for m in members
            ],
        }


def _sum(session: Session, organization_id: int, *criteria) -> int:
    value = session.scalar(
        select(func.coalesce(func.sum(Point.value), 0)).where(
            Point.organization_id == organization_id, *criteria
        )
    )
    return int(value or 0)


def totals_for(
    engine: Engine,
    organization_id: int,
    *,
    participant_id: int | None = None,
    group_id: int | None = None,
) -> int:
    """Live total for exactly one participant or one group.

    A group's total counts group-level rows only, matching what
    :func:`~pointkeeper.services.distributor.apply_batch` reports.
    """
    if (participant_id is None) == (group_id is None):
        raise ValidationError("Provide exactly one of participant_id or group_id")
    with Session(engine) as session:
        if participant_id is not None:
            return _sum(session, organization_id, Point.participant_id == participant_id)
        return _sum(session, organization_id, Point.group_id == group_id,
                    Point.participant_id.is_(None))


# ---------------------------------------------------------------------------
# Honor listings
# ---------------------------------------------------------------------------
def _honor_row(row) -> dict:
    return {
        "id": row.id,
        "participant_id": row.participant_id,
        "date": row.date.isoformat(),
        "reason": row.reason,
        "first_name": row.first_name,
        "last_name": row.last_name,
        "group_name": row.group_name,
    }


def _honors_query(organization_id: int):
    return (
        select(
            Honor.id,
            Honor.participant_id,
            Honor.date,
            Honor.reason,
            Participant.first_name,
            Participant.last_name,
            Group.name.label("group_name"),
        )
        .select_from(Honor)
        .join(Participant, Participant.id == Honor.participant_id)
        .outerjoin(
            ParticipantGroup,
            and_(
                ParticipantGroup.participant_id == Honor.participant_id,
                ParticipantGroup.organization_id == organization_id,
            ),
        )
        .outerjoin(Group, Group.id == ParticipantGroup.group_id)
        .where(Honor.organization_id == organization_id)
    )


def list_honors(engine: Engine, organization_id: int, day: date | str | None = None) -> dict:
    """Participants, honors (optionally for one day) and the days that have honors."""
    wanted = parse_calendar_date(day) if day is not None else None
    stmt = _honors_query(organization_id)
    if wanted is not None:
        stmt = stmt.where(Honor.date == wanted)

    with Session(engine) as session:
        participants = session.execute(
            _participants_in_org(
                organization_id,
                Participant.id,
                Participant.first_name,
                Participant.last_name,
                ParticipantGroup.group_id,
                Group.name.label("group_name"),
                ParticipantGroup.is_leader,
                ParticipantGroup.is_second_leader,
            ).order_by(Group.name, Participant.first_name, Participant.id)
        ).all()
        honors = session.execute(stmt.order_by(Honor.date.desc(), Honor.id)).all()
        days = session.scalars(
            select(Honor.date)
            .where(Honor.organization_id == organization_id)
            .distinct()
            .order_by(Honor.date.desc())
        ).all()

    return {
        "participants": [
            {
                "participant_id": p.id,
                "first_name": p.first_name,
                "last_name": p.last_name,
                "group_id": p.group_id,
                "group_name": p.group_name,
                "is_leader": bool(p.is_leader),
                "is_second_leader": bool(p.is_second_leader),
            }
            for p in participants
        ],
        "honors": [_honor_row(h) for h in honors],
        "available_dates": [d.isoformat() for d in days],
    }


def honors_history(
    engine: Engine,
    organization_id: int,
    *,
    start_date: date | str | None = None,
    end_date: date | str | None = None,
    participant_id: int | None = None,
) -> dict:
    """Honors in a date window plus a per-participant honor count summary."""
    stmt = _honors_query(organization_id)
    if start_date is not None:
        stmt = stmt.where(Honor.date >= parse_calendar_date(start_date, "start_date"))
    if end_date is not None:
        stmt = stmt.where(Honor.date <= parse_calendar_date(end_date, "end_date"))
    if participant_id is not None:
        stmt = stmt.where(Honor.participant_id == participant_id)
    stmt = stmt.order_by(Honor.date.desc(), Participant.last_name, Participant.first_name)

    summary_stmt = (
        select(
            Participant.id,
            Participant.first_name,
            Participant.last_name,
            func.count(Honor.id).label("honor_count"),
        )
        .select_from(Honor)
        .join(Participant, Participant.id == Honor.participant_id)
        .where(Honor.organization_id == organization_id)
        .group_by(Participant.id, Participant.first_name, Participant.last_name)
        .order_by(func.count(Honor.id).desc(), Participant.id)
    )

    with Session(engine) as session:
        rows = session.execute(stmt).all()
        summary = session.execute(summary_stmt).all()

    return {
        "data": [_honor_row(r) for r in rows],
        "summary": [
            {
                "id": s.id,
                "first_name": s.first_name,
                "last_name": s.last_name,
                "honor_count": int(s.honor_count),
            }
            for s in summary
        ],
    }


def recent_honors(
    engine: Engine, organization_id: int, limit: int = DEFAULT_LEADERBOARD_LIMIT
) -> list[dict]:
    """Most recent honors first."""
    limit = _check_limit(limit)
    stmt = _honors_query(organization_id).order_by(Honor.date.desc(), Honor.id.desc()).limit(limit)
    with Session(engine) as session:
        return [_honor_row(r) for r in session.execute(stmt)]
