"""
pointkeeper.api.routes.honors — Honor award / edit / listing endpoints
=======================================================================
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from pointkeeper.api.deps import get_config, get_context, get_engine
from pointkeeper.config import PointkeeperConfig
from pointkeeper.context import OperationContext
from pointkeeper.services import aggregation, honor_service, settings_service

router = APIRouter(tags=["honors"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class HonorUpdate(BaseModel):
    date: str | None = None
    # Length is checked by honor_service so the error maps to a 400
    reason: str | None = None


# ---------------------------------------------------------------------------
# GET /honors
# ---------------------------------------------------------------------------
@router.get("/honors")
def get_honors(
    date: str | None = Query(None),
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    """Participants, honors (optionally for one day) and days with honors."""
    return {"success": True, "data": aggregation.list_honors(engine, ctx.organization_id, date)}


# ---------------------------------------------------------------------------
# POST /award-honor
# ---------------------------------------------------------------------------
@router.post("/award-honor")
def award_honor(
    payload: Annotated[Any, Body()],
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
    cfg: PointkeeperConfig = Depends(get_config),
):
    """Award one honor (object body) or many (array body)."""
    honors = payload if isinstance(payload, list) else [payload]
    results = honor_service.award_honors(
        engine, ctx, honors, max_batch_size=cfg.max_batch_size
    )
    return {"success": True, "results": [r.as_dict() for r in results]}


# ---------------------------------------------------------------------------
# PATCH /honors/{honor_id}
# ---------------------------------------------------------------------------
@router.patch("/honors/{honor_id}")
def patch_honor(
    honor_id: int,
    body: HonorUpdate,
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    result = honor_service.update_honor(
        engine, ctx, honor_id, date=body.date, reason=body.reason
    )
    return {"success": True, "data": result.as_dict()}


# ---------------------------------------------------------------------------
# DELETE /honors/{honor_id}
# ---------------------------------------------------------------------------
@router.delete("/honors/{honor_id}")
def remove_honor(
    honor_id: int,
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    result = honor_service.delete_honor(engine, ctx, honor_id)
    return {"success": True, "data": result.as_dict()}


# ---------------------------------------------------------------------------
# GET /honors-history
# ---------------------------------------------------------------------------
@router.get("/honors-history")
def get_honors_history(
    start_date: str | None = Query(None),
    end_date: str | None = Query(None),
    participant_id: int | None = Query(None),
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    history = aggregation.honors_history(
        engine,
        ctx.organization_id,
        start_date=start_date,
        end_date=end_date,
        participant_id=participant_id,
    )
    return {"success": True, **history}


# ---------------------------------------------------------------------------
# GET /recent-honors
# ---------------------------------------------------------------------------
@router.get("/recent-honors")
def get_recent_honors(
    limit: int = Query(10, ge=1),
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    return {
        "success": True,
        "data": aggregation.recent_honors(engine, ctx.organization_id, limit),
    }


# ---------------------------------------------------------------------------
# GET / PUT /point-rules
# ---------------------------------------------------------------------------
@router.get("/point-rules")
def get_point_rules(
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    return {"success": True, "data": settings_service.get_point_rules(engine, ctx.organization_id)}


@router.put("/point-rules")
def put_point_rules(
    rules: Annotated[Any, Body()],
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    effective = settings_service.update_point_rules(engine, ctx, rules)
    return {"success": True, "data": effective}
