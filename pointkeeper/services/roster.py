"""
pointkeeper.services.roster — Group Membership & Attendance Lookups
====================================================================

Read-only queries over tables owned by the membership and attendance
subsystems.  Every function takes the caller's open :class:`Session` so
the lookups run inside the same transaction as the ledger writes that
depend on them.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from pointkeeper.constants import ELIGIBLE_ATTENDANCE_STATUSES
from pointkeeper.database.models import (
    Attendance,
    Group,
    ParticipantGroup,
    ParticipantOrganization,
)


# ---------------------------------------------------------------------------
# Group membership
# ---------------------------------------------------------------------------
def get_group(session: Session, organization_id: int, group_id: int) -> Group | None:
    """The group, or ``None`` if it doesn't exist in this organization."""
    return session.scalar(
        select(Group).where(
            Group.id == group_id, Group.organization_id == organization_id
        )
    )


def list_members(session: Session, organization_id: int, group_id: int) -> list[int]:
    """Participant ids of the group's members, ascending."""
    return list(session.scalars(
        select(ParticipantGroup.participant_id)
        .where(
            ParticipantGroup.organization_id == organization_id,
            ParticipantGroup.group_id == group_id,
        )
        .order_by(ParticipantGroup.participant_id)
    ))


def lookup_participant(
    session: Session, organization_id: int, participant_id: int
) -> tuple[bool, int | None]:
    """Return ``(belongs_to_org, group_id)`` for one participant."""
    row = session.execute(
        select(ParticipantOrganization.participant_id, ParticipantGroup.group_id)
        .outerjoin(
            ParticipantGroup,
            and_(
                ParticipantGroup.participant_id == ParticipantOrganization.participant_id,
                ParticipantGroup.organization_id == organization_id,
            ),
        )
        .where(
            ParticipantOrganization.participant_id == participant_id,
            ParticipantOrganization.organization_id == organization_id,
        )
    ).first()
    if row is None:
        return False, None
    return True, row.group_id


def groups_of(
    session: Session, organization_id: int, participant_ids: Iterable[int]
) -> dict[int, int | None]:
    """Map each participant that belongs to the organization to its group
    (``None`` when ungrouped).  Participants outside the organization are
    absent from the result.  One query for the whole list.
    """
    ids = set(participant_ids)
    if not ids:
        return {}
    rows = session.execute(
        select(ParticipantOrganization.participant_id, ParticipantGroup.group_id)
        .outerjoin(
            ParticipantGroup,
            and_(
                ParticipantGroup.participant_id == ParticipantOrganization.participant_id,
                ParticipantGroup.organization_id == organization_id,
            ),
        )
        .where(
            ParticipantOrganization.organization_id == organization_id,
            ParticipantOrganization.participant_id.in_(sorted(ids)),
        )
    ).all()
    return {row.participant_id: row.group_id for row in rows}


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------
def any_attendance_recorded(session: Session, organization_id: int, day: date) -> bool:
    """Was attendance taken at all for this organization on *day*?"""
    count = session.scalar(
        select(func.count())
        .select_from(Attendance)
        .where(Attendance.organization_id == organization_id, Attendance.date == day)
    )
    return bool(count)


def eligible_participants(
    session: Session, organization_id: int, day: date, participant_ids: Iterable[int]
) -> set[int]:
    """Subset of *participant_ids* marked present or late on *day*."""
    ids = set(participant_ids)
    if not ids:
        return set()
    return set(session.scalars(
        select(Attendance.participant_id).where(
            Attendance.organization_id == organization_id,
            Attendance.date == day,
            Attendance.participant_id.in_(sorted(ids)),
            Attendance.status.in_(sorted(ELIGIBLE_ATTENDANCE_STATUSES)),
        )
    ))
