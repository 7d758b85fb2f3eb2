"""
pointkeeper.api.deps — FastAPI dependency injection
====================================================

Organization resolution and authentication happen upstream (gateway /
auth middleware).  By the time a request reaches these routes the
resolved organization and acting user arrive as ``X-Organization-Id``
and ``X-Actor-Id`` headers, which :func:`get_context` turns into an
:class:`~pointkeeper.context.OperationContext`.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

from fastapi import Header, HTTPException, status
from sqlalchemy import Engine

from pointkeeper.config import PointkeeperConfig, load_config
from pointkeeper.context import OperationContext
from pointkeeper.database.engine import create_db_engine


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> PointkeeperConfig:
    path = os.getenv("POINTKEEPER_CONFIG", "config.yaml")
    if not os.path.exists(path):
        return PointkeeperConfig()
    return load_config(path)


def get_context(
    x_organization_id: Annotated[int | None, Header()] = None,
    x_actor_id: Annotated[str | None, Header()] = None,
) -> OperationContext:
    """Build the per-request context.  Raises 400 without an organization."""
    if x_organization_id is None:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing X-Organization-Id header")
    return OperationContext.create(organization_id=x_organization_id, actor_id=x_actor_id)
