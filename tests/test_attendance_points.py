"""
tests/test_attendance_points.py — Attendance Status Adjustment Tests
=====================================================================
Covers the ledger rows written when a participant's attendance status
changes: rule deltas, zero-delta changes, organization overrides, and
validation.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from pointkeeper.database.models import Point
from pointkeeper.errors import NotFoundError, ValidationError
from pointkeeper.services import aggregation, attendance_points, settings_service

from conftest import EAGLES, ORG_ID

DAY = "2024-01-10"


def _rows(engine) -> list[Point]:
    with Session(engine) as session:
        return list(session.scalars(select(Point).order_by(Point.id)))


def _total(engine, participant_id: int) -> int:
    return aggregation.totals_for(engine, ORG_ID, participant_id=participant_id)


class TestAdjustments:
    def test_absent_to_present_adds_a_point(self, engine, ctx):
        [adj] = attendance_points.apply_attendance_changes(engine, ctx, [
            {"participant_id": 2, "date": DAY, "previous_status": "absent", "status": "present"},
        ])
        assert adj.as_dict() == {
            "participantId": 2, "date": DAY, "previousStatus": "absent",
            "newStatus": "present", "points": 1,
        }
        [row] = _rows(engine)
        assert (row.participant_id, row.group_id, row.value) == (2, EAGLES, 1)
        assert row.effective_date == date(2024, 1, 10)

    def test_present_to_late_removes_the_point(self, engine, ctx):
        attendance_points.apply_attendance_changes(engine, ctx, [
            {"participant_id": 1, "date": DAY, "status": "present"},
        ])
        attendance_points.apply_attendance_changes(engine, ctx, [
            {"participant_id": 1, "date": DAY, "previous_status": "present", "status": "late"},
        ])
        assert [r.value for r in _rows(engine)] == [1, -1]
        assert _total(engine, 1) == 0

    def test_zero_delta_writes_nothing(self, engine, ctx):
        results = attendance_points.apply_attendance_changes(engine, ctx, [
            {"participant_id": 3, "date": DAY, "status": "absent"},
            {"participant_id": 4, "date": DAY, "previous_status": "late", "status": "excused"},
        ])
        assert results == []
        assert _rows(engine) == []

    def test_ungrouped_participant_row_has_no_group(self, engine, ctx):
        attendance_points.apply_attendance_changes(engine, ctx, [
            {"participantId": 5, "date": DAY, "status": "present"},
        ])
        [row] = _rows(engine)
        assert row.group_id is None
        assert _total(engine, 5) == 1

    def test_organization_rules_apply(self, engine, ctx):
        settings_service.update_point_rules(engine, ctx, {
            "attendance": {"present": {"points": 3}, "late": {"points": 1}},
        })
        [adj] = attendance_points.apply_attendance_changes(engine, ctx, [
            {"participant_id": 1, "date": DAY, "previous_status": "late", "status": "present"},
        ])
        assert adj.points == 2

    def test_unknown_participant_writes_nothing(self, engine, ctx):
        with pytest.raises(NotFoundError, match="6"):
            attendance_points.apply_attendance_changes(engine, ctx, [
                {"participant_id": 1, "date": DAY, "status": "present"},
                {"participant_id": 6, "date": DAY, "status": "present"},
            ])
        assert _rows(engine) == []


class TestValidation:
    def test_payload_must_be_a_list(self):
        with pytest.raises(ValidationError, match="array"):
            attendance_points.parse_changes({"participant_id": 1})

    def test_unknown_status(self):
        with pytest.raises(ValidationError, match="status must be one of"):
            attendance_points.parse_changes([
                {"participant_id": 1, "date": DAY, "status": "sleeping"},
            ])

    def test_status_is_required(self):
        with pytest.raises(ValidationError, match="status"):
            attendance_points.parse_changes([{"participant_id": 1, "date": DAY}])

    def test_missing_date(self):
        with pytest.raises(ValidationError, match="date is required"):
            attendance_points.parse_changes([{"participant_id": 1, "status": "present"}])

    def test_batch_size_bound(self):
        changes = [{"participant_id": 1, "date": DAY, "status": "present"}] * 3
        with pytest.raises(ValidationError, match="Too many"):
            attendance_points.parse_changes(changes, max_batch_size=2)

    def test_empty_list_is_a_no_op(self, engine, ctx):
        assert attendance_points.apply_attendance_changes(engine, ctx, []) == []
