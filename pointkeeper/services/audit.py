"""
pointkeeper.services.audit — Audit Trail Helpers
=================================================

Honor edits/deletions and point-rule changes record a before/after
snapshot in ``admin_log`` inside the same transaction as the change, so
the audit row commits or rolls back together with it.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from pointkeeper.context import OperationContext
from pointkeeper.database.models import AdminLog


def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, (datetime, date)):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    ctx: OperationContext,
    *,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        organization_id=ctx.organization_id,
        actor_id=ctx.actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))
