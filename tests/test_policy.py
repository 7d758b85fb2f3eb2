"""
tests/test_policy.py — Point Policy Resolver Tests
===================================================
Rule lookup, organization overrides merged over the defaults, and the
attendance delta helper.
"""

from __future__ import annotations

import json

from sqlalchemy.orm import Session

from pointkeeper.constants import DEFAULT_POINT_RULES, POINT_RULES_KEY
from pointkeeper.database.models import OrganizationSetting
from pointkeeper.engine.policy import (
    attendance_point_delta,
    load_point_rules,
    resolve_award_value,
    rule_value,
)

from conftest import ORG_ID


def _store_rules(engine, value: str, organization_id: int = ORG_ID) -> None:
    with Session(engine) as session:
        session.add(OrganizationSetting(
            organization_id=organization_id,
            setting_key=POINT_RULES_KEY,
            setting_value=value,
        ))
        session.commit()


class TestDefaults:
    def test_no_override_returns_defaults(self, engine):
        with Session(engine) as session:
            assert load_point_rules(session, ORG_ID) == DEFAULT_POINT_RULES

    def test_honor_award_default_is_five(self, engine):
        with Session(engine) as session:
            assert resolve_award_value(session, ORG_ID, "honors.award") == 5

    def test_attendance_leaf_reads_points(self, engine):
        with Session(engine) as session:
            assert resolve_award_value(session, ORG_ID, "attendance.present") == 1
            assert resolve_award_value(session, ORG_ID, "attendance.absent") == 0

    def test_unknown_category_is_zero(self, engine):
        with Session(engine) as session:
            assert resolve_award_value(session, ORG_ID, "quests.complete") == 0

    def test_loaded_rules_are_a_copy(self, engine):
        with Session(engine) as session:
            rules = load_point_rules(session, ORG_ID)
        rules["honors"]["award"] = 99
        assert DEFAULT_POINT_RULES["honors"]["award"] == 5


class TestOverrides:
    def test_partial_override_keeps_other_defaults(self, engine):
        _store_rules(engine, json.dumps({"honors": {"award": 10}}))
        with Session(engine) as session:
            assert resolve_award_value(session, ORG_ID, "honors.award") == 10
            assert resolve_award_value(session, ORG_ID, "badges.level_up") == 10
            assert resolve_award_value(session, ORG_ID, "attendance.present") == 1

    def test_override_is_per_organization(self, engine):
        _store_rules(engine, json.dumps({"honors": {"award": 10}}))
        with Session(engine) as session:
            assert resolve_award_value(session, 2, "honors.award") == 5

    def test_unreadable_json_falls_back(self, engine):
        _store_rules(engine, "{not json")
        with Session(engine) as session:
            assert resolve_award_value(session, ORG_ID, "honors.award") == 5

    def test_non_integer_leaf_falls_back_to_default(self, engine):
        _store_rules(engine, json.dumps({"honors": {"award": "lots"}}))
        with Session(engine) as session:
            assert resolve_award_value(session, ORG_ID, "honors.award") == 5

    def test_negative_value_allowed(self, engine):
        _store_rules(engine, json.dumps({"attendance": {"absent": {"points": -2}}}))
        with Session(engine) as session:
            assert resolve_award_value(session, ORG_ID, "attendance.absent") == -2


class TestRuleValue:
    def test_reads_plain_integer(self):
        assert rule_value({"honors": {"award": 7}}, "honors.award") == 7

    def test_missing_path_uses_default(self):
        assert rule_value({}, "badges.earn") == 5


class TestAttendanceDelta:
    def test_absent_to_present(self):
        assert attendance_point_delta("absent", "present", DEFAULT_POINT_RULES) == 1

    def test_present_to_absent(self):
        assert attendance_point_delta("present", "absent", DEFAULT_POINT_RULES) == -1

    def test_first_mark(self):
        assert attendance_point_delta(None, "present", DEFAULT_POINT_RULES) == 1

    def test_unknown_status_counts_zero(self):
        assert attendance_point_delta("present", "sleeping", DEFAULT_POINT_RULES) == -1

    def test_custom_rules(self):
        rules = {"attendance": {"present": {"points": 3}, "late": {"points": 1}}}
        assert attendance_point_delta("late", "present", rules) == 2
