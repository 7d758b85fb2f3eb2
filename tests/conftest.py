"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import Engine, create_engine, event

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from pointkeeper.context import OperationContext
from pointkeeper.database.engine import init_db
from pointkeeper.database.models import (
    Attendance,
    Group,
    Organization,
    Participant,
    ParticipantGroup,
    ParticipantOrganization,
)

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Pointkeeper tables.

    Uses StaticPool so the TestClient's worker thread sees the same
    in-memory database.  pysqlite's own transaction handling is switched
    off and ``BEGIN`` is emitted explicitly so SAVEPOINTs behave the way
    they do on PostgreSQL.  Foreign keys are enforced.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    init_db(engine)
    return engine


# ---------------------------------------------------------------------------
# Seeded organization
#
#   org 1 "Riverside"
#     group 10 "Eagles"  → participants 1 (leader), 2, 3
#     group 20 "Hawks"   → participant 4
#     participant 5      → no group
#   org 2 "Elsewhere"
#     group 30 "Owls"    → participant 6
# ---------------------------------------------------------------------------
ORG_ID = 1
OTHER_ORG_ID = 2
EAGLES = 10
HAWKS = 20
OWLS = 30

_PEOPLE = {
    1: ("Ada", "Lovelace"),
    2: ("Ben", "Okri"),
    3: ("Cleo", "Park"),
    4: ("Dev", "Patel"),
    5: ("Eli", "Moss"),
    6: ("Fay", "Wren"),
}


def seed_roster(engine: Engine) -> None:
    with Session(engine) as session:
        session.add_all([
            Organization(id=ORG_ID, name="Riverside"),
            Organization(id=OTHER_ORG_ID, name="Elsewhere"),
        ])
        session.add_all(
            Participant(id=pid, first_name=first, last_name=last)
            for pid, (first, last) in _PEOPLE.items()
        )
        session.flush()
        session.add_all([
            Group(id=EAGLES, organization_id=ORG_ID, name="Eagles"),
            Group(id=HAWKS, organization_id=ORG_ID, name="Hawks"),
            Group(id=OWLS, organization_id=OTHER_ORG_ID, name="Owls"),
        ])
        session.flush()
        for pid in (1, 2, 3, 4, 5):
            session.add(ParticipantOrganization(participant_id=pid, organization_id=ORG_ID))
        session.add(ParticipantOrganization(participant_id=6, organization_id=OTHER_ORG_ID))
        session.add_all([
            ParticipantGroup(participant_id=1, organization_id=ORG_ID, group_id=EAGLES,
                             is_leader=True),
            ParticipantGroup(participant_id=2, organization_id=ORG_ID, group_id=EAGLES),
            ParticipantGroup(participant_id=3, organization_id=ORG_ID, group_id=EAGLES),
            ParticipantGroup(participant_id=4, organization_id=ORG_ID, group_id=HAWKS),
            ParticipantGroup(participant_id=6, organization_id=OTHER_ORG_ID, group_id=OWLS),
        ])
        session.commit()


def record_attendance(engine: Engine, day: date, statuses: dict[int, str],
                      organization_id: int = ORG_ID) -> None:
    with Session(engine) as session:
        session.add_all(
            Attendance(participant_id=pid, organization_id=organization_id,
                       date=day, status=status)
            for pid, status in statuses.items()
        )
        session.commit()


@pytest.fixture
def engine(db_engine: Engine) -> Engine:
    """SQLite engine with the roster above already committed."""
    seed_roster(db_engine)
    return db_engine


@pytest.fixture
def ctx() -> OperationContext:
    return OperationContext.create(organization_id=ORG_ID, actor_id="admin-1")


@pytest.fixture
def other_ctx() -> OperationContext:
    return OperationContext.create(organization_id=OTHER_ORG_ID, actor_id="admin-2")
