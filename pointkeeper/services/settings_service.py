"""
pointkeeper.services.settings_service — Point Rules Read/Write
===============================================================

Typed access to the per-organization ``point_system_rules`` setting that
:mod:`pointkeeper.engine.policy` resolves award values from.  Writes are
validated (every leaf must be an integer, or a ``{"points": int}``
mapping) and audited in ``admin_log``.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from pointkeeper.constants import POINT_RULES_KEY
from pointkeeper.database.engine import get_session
from pointkeeper.database.models import AdminActionType, OrganizationSetting
from pointkeeper.engine.policy import load_point_rules
from pointkeeper.errors import ValidationError
from pointkeeper.services.audit import log_admin_action

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from pointkeeper.context import OperationContext


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_point_rules(engine: Engine, organization_id: int) -> dict:
    """Effective rules for the organization (override merged over defaults)."""
    with Session(engine) as session:
        return load_point_rules(session, organization_id)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def _stored_value(row: OrganizationSetting | None) -> Any:
    if row is None:
        return None
    try:
        return json.loads(row.setting_value)
    except (json.JSONDecodeError, TypeError):
        return row.setting_value


def _validate_rules(node: Any, path: str = "rules") -> None:
    if not isinstance(node, dict):
        raise ValidationError(f"{path} must be an object")
    for key, value in node.items():
        child = f"{path}.{key}"
        if isinstance(value, bool):
            raise ValidationError(f"{child} must be an integer")
        if isinstance(value, int):
            continue
        if isinstance(value, str) and key == "label":
            continue
        if isinstance(value, dict):
            _validate_rules(value, child)
            continue
        raise ValidationError(f"{child} must be an integer or an object")


def update_point_rules(engine: Engine, ctx: OperationContext, rules: Any) -> dict:
    """Store the organization's rule override and return the effective rules.

    The override replaces any previous override; keys it leaves out fall
    back to the built-in defaults.
    """
    _validate_rules(rules)

    with get_session(engine) as session:
        key = (ctx.organization_id, POINT_RULES_KEY)
        row = session.get(OrganizationSetting, key)
        before = _stored_value(row)
        value = json.dumps(rules, sort_keys=True)
        if row is None:
            session.add(OrganizationSetting(
                organization_id=ctx.organization_id,
                setting_key=POINT_RULES_KEY,
                setting_value=value,
            ))
            action = AdminActionType.CREATE
        else:
            row.setting_value = value
            action = AdminActionType.UPDATE
        session.flush()
        log_admin_action(
            session,
            ctx,
            action_type=action.value,
            target_table="organization_settings",
            target_id=POINT_RULES_KEY,
            before=before,
            after=rules,
        )
        effective = load_point_rules(session, ctx.organization_id)

    ctx.logger.info("Point rules saved (%s)", action.value)
    return effective
