"""
pointkeeper.engine.policy — Point Policy Resolver
==================================================

Resolves organization-specific point values from the
``point_system_rules`` entry of ``organization_settings``.  Rules are a
JSON tree; a category is a dotted path into it::

    {
        "attendance": {"present": {"label": "present", "points": 1}, ...},
        "honors": {"award": 5},
        "badges": {"earn": 5, "level_up": 10}
    }

    resolve_award_value(session, org_id, "honors.award")        # 5
    resolve_award_value(session, org_id, "attendance.present")  # 1

An organization override is deep-merged over
:data:`~pointkeeper.constants.DEFAULT_POINT_RULES`, so a partial override
(``{"honors": {"award": 10}}``) keeps every other default.  No writes.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from pointkeeper.constants import DEFAULT_POINT_RULES, POINT_RULES_KEY
from pointkeeper.database.models import OrganizationSetting

logger = logging.getLogger(__name__)


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_point_rules(session: Session, organization_id: int) -> dict:
    """Return the organization's rule tree merged over the defaults.

    A missing row or unreadable JSON falls back to the defaults.
    """
    row = session.get(OrganizationSetting, (organization_id, POINT_RULES_KEY))
    if row is None:
        return copy.deepcopy(DEFAULT_POINT_RULES)
    try:
        override = json.loads(row.setting_value)
    except (json.JSONDecodeError, TypeError):
        logger.warning(
            "Unreadable %s for organization %s — using defaults",
            POINT_RULES_KEY, organization_id,
        )
        return copy.deepcopy(DEFAULT_POINT_RULES)
    if not isinstance(override, dict):
        return copy.deepcopy(DEFAULT_POINT_RULES)
    return _deep_merge(DEFAULT_POINT_RULES, override)


def _lookup(rules: dict, category: str) -> Any:
    node: Any = rules
    for part in category.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    # Attendance rules are {"label": ..., "points": n}
    if isinstance(node, dict):
        node = node.get("points")
    return node


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def rule_value(rules: dict, category: str) -> int:
    """Read *category* from an already-loaded rule tree, falling back to the
    built-in default and then to 0."""
    value = _as_int(_lookup(rules, category))
    if value is None:
        value = _as_int(_lookup(DEFAULT_POINT_RULES, category))
    return value if value is not None else 0


def resolve_award_value(session: Session, organization_id: int, category: str) -> int:
    """Configured integer point value for *category* in *organization_id*."""
    return rule_value(load_point_rules(session, organization_id), category)


def attendance_point_delta(
    previous_status: str | None, new_status: str | None, rules: dict
) -> int:
    """Point adjustment when an attendance status changes.

    ``absent → present`` with the default rules yields ``+1``; the reverse
    yields ``-1``.  Unknown or empty statuses count as 0 points.
    """
    def points_for(status: str | None) -> int:
        if not status:
            return 0
        return _as_int(_lookup(rules, f"attendance.{status}")) or 0

    return points_for(new_status) - points_for(previous_status)
