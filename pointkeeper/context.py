"""
pointkeeper.context — Per-Operation Context
============================================

Write operations never read organization, actor, or logger from
process-wide state.  The caller (API dependency, script, test) builds an
:class:`OperationContext` and hands it to the service call.

Usage::

    ctx = OperationContext.create(organization_id=3, actor_id="u-17")
    apply_batch(engine, ctx, mutations)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

_base_logger = logging.getLogger("pointkeeper")


@dataclass(frozen=True, slots=True)
class OperationContext:
    """Who is acting, for which organization, and where to log."""

    organization_id: int
    actor_id: str | None
    logger: logging.LoggerAdapter

    @classmethod
    def create(
        cls,
        organization_id: int,
        actor_id: str | None = None,
        logger: logging.Logger | None = None,
    ) -> OperationContext:
        """Build a context whose logger tags every record with org + actor."""
        adapter = logging.LoggerAdapter(
            logger or _base_logger,
            {"organization_id": organization_id, "actor_id": actor_id},
        )
        return cls(organization_id=organization_id, actor_id=actor_id, logger=adapter)
