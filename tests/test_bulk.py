"""
tests/test_bulk.py — Typed Bulk-Insert Builder Tests
=====================================================
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pointkeeper.database.bulk import BulkInsert
from pointkeeper.database.models import Honor, Point

from conftest import EAGLES, ORG_ID

COLUMNS = ("participant_id", "group_id", "organization_id", "value", "effective_date")


class TestBuilder:
    def test_unknown_column_rejected(self):
        with pytest.raises(ValueError, match="no column"):
            BulkInsert(Point, ("participant_id", "points"))

    def test_wrong_tuple_length_rejected(self):
        rows = BulkInsert(Point, COLUMNS)
        with pytest.raises(ValueError, match="Expected 5 values"):
            rows.add((1, EAGLES, ORG_ID))

    def test_len_counts_queued_rows(self):
        rows = BulkInsert(Point, COLUMNS)
        rows.extend([(1, EAGLES, ORG_ID, 1, date(2024, 1, 1))] * 3)
        assert len(rows) == 3


class TestExecute:
    def test_inserts_every_row(self, engine):
        rows = BulkInsert(Point, COLUMNS)
        rows.add((None, EAGLES, ORG_ID, 5, date(2024, 1, 10)))
        rows.extend((pid, EAGLES, ORG_ID, 5, date(2024, 1, 10)) for pid in (1, 2, 3))
        with Session(engine) as session:
            assert rows.execute(session) == 4
            session.commit()
            assert session.scalar(select(func.count()).select_from(Point)) == 4
            assert session.scalar(select(func.sum(Point.value))) == 20

    def test_empty_builder_is_a_no_op(self, engine):
        with Session(engine) as session:
            assert BulkInsert(Point, COLUMNS).execute(session) == 0
            assert BulkInsert(Point, COLUMNS).execute_returning(session) == []

    def test_returning_ids_follow_add_order(self, engine):
        rows = BulkInsert(Honor, ("participant_id", "organization_id", "date", "reason"))
        rows.add((3, ORG_ID, date(2024, 1, 3), "third"))
        rows.add((1, ORG_ID, date(2024, 1, 1), "first"))
        with Session(engine) as session:
            ids = rows.execute_returning(session)
            session.commit()
            assert len(ids) == 2
            reasons = [session.get(Honor, i).reason for i in ids]
        assert reasons == ["third", "first"]
