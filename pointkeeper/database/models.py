"""
pointkeeper.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables owned by the points ledger:
- points                 — Append-only point ledger (one row per point event)
- honors                 — One honor per participant per day
- admin_log              — Append-only audit trail

Platform tables read by the ledger (owned by other subsystems):
- organizations          — Tenants
- participants           — Member profiles
- participant_organizations — Which organizations a participant belongs to
- groups                 — Per-organization groups
- participant_groups     — A participant's group inside an organization
- attendance             — Per-day attendance status
- organization_settings  — Per-organization key/value settings
"""

from __future__ import annotations

import enum
import datetime as dt
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Pointkeeper ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class AttendanceStatus(enum.StrEnum):
    """Statuses recorded by the attendance subsystem."""
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    EXCUSED = "excused"


class AdminActionType(enum.StrEnum):
    """Categories of mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# ---------------------------------------------------------------------------
# Organizations: tenants
# ---------------------------------------------------------------------------
class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Participants: member profiles
# ---------------------------------------------------------------------------
class Participant(Base):
    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    memberships: Mapped[list[ParticipantOrganization]] = relationship(
        back_populates="participant", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Participant id={self.id} name={self.first_name!r}>"


class ParticipantOrganization(Base):
    __tablename__ = "participant_organizations"

    participant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("participants.id", ondelete="CASCADE"), primary_key=True
    )
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )

    participant: Mapped[Participant] = relationship(back_populates="memberships")

    __table_args__ = (
        Index("ix_participant_organizations_org", "organization_id"),
    )


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------
class Group(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        Index("ix_groups_org", "organization_id"),
    )

    def __repr__(self) -> str:
        return f"<Group id={self.id} name={self.name!r}>"


class ParticipantGroup(Base):
    """A participant's resident group inside one organization."""
    __tablename__ = "participant_groups"

    participant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("participants.id", ondelete="CASCADE"), primary_key=True
    )
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )
    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    is_leader: Mapped[bool] = mapped_column(Boolean, default=False)
    is_second_leader: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("ix_participant_groups_group", "organization_id", "group_id"),
    )


# ---------------------------------------------------------------------------
# Attendance: read-only input to fan-out gating
# ---------------------------------------------------------------------------
class Attendance(Base):
    __tablename__ = "attendance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "participant_id", "organization_id", "date",
            name="uq_attendance_participant_org_date",
        ),
        Index("ix_attendance_org_date", "organization_id", "date"),
    )

    def __repr__(self) -> str:
        return f"<Attendance participant={self.participant_id} {self.date} {self.status}>"


# ---------------------------------------------------------------------------
# Honors: at most one per participant per day
# ---------------------------------------------------------------------------
class Honor(Base):
    __tablename__ = "honors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "participant_id", "date", "organization_id",
            name="uq_honors_participant_date_org",
        ),
        Index("ix_honors_org_date", "organization_id", "date"),
    )

    def __repr__(self) -> str:
        return f"<Honor id={self.id} participant={self.participant_id} date={self.date}>"


# ---------------------------------------------------------------------------
# Points: append-only ledger
# ---------------------------------------------------------------------------
class Point(Base):
    """One point event.

    ``participant_id IS NULL`` marks a group-level tally row; member rows
    carry both the participant and the group they were tagged with.
    A group that still has ledger rows cannot be deleted.
    """
    __tablename__ = "points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=True
    )
    group_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("groups.id"), nullable=True
    )
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    effective_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    honor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("honors.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "participant_id IS NOT NULL OR group_id IS NOT NULL",
            name="ck_points_has_target",
        ),
        Index("ix_points_org_participant", "organization_id", "participant_id"),
        Index("ix_points_org_group", "organization_id", "group_id"),
        Index("ix_points_honor", "honor_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Point id={self.id} participant={self.participant_id} "
            f"group={self.group_id} value={self.value}>"
        )


# ---------------------------------------------------------------------------
# OrganizationSetting: per-organization key/value store
# ---------------------------------------------------------------------------
class OrganizationSetting(Base):
    """Per-organization settings.  Values are stored as JSON strings."""
    __tablename__ = "organization_settings"

    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )
    setting_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    setting_value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<OrganizationSetting org={self.organization_id} key={self.setting_key!r}>"


# ---------------------------------------------------------------------------
# AdminLog: append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_org_time", "organization_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"
