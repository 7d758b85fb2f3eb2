"""
pointkeeper.api.routes.points — Point mutation & ledger read endpoints
=======================================================================
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy import Engine

from pointkeeper.api.deps import get_config, get_context, get_engine
from pointkeeper.config import PointkeeperConfig
from pointkeeper.context import OperationContext
from pointkeeper.services import aggregation, attendance_points, distributor

router = APIRouter(tags=["points"])


# ---------------------------------------------------------------------------
# POST /update-points
# ---------------------------------------------------------------------------
@router.post("/update-points")
def update_points(
    updates: Annotated[Any, Body()],
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
    cfg: PointkeeperConfig = Depends(get_config),
):
    """Apply a batch of group / participant point mutations atomically."""
    results = distributor.apply_batch(
        engine, ctx, updates, max_batch_size=cfg.max_batch_size
    )
    return {
        "success": True,
        "data": {"updates": [r.as_dict() for r in results]},
        "message": "Points updated successfully",
    }


# ---------------------------------------------------------------------------
# POST /attendance-points
# ---------------------------------------------------------------------------
@router.post("/attendance-points")
def record_attendance_points(
    changes: Annotated[Any, Body()],
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
    cfg: PointkeeperConfig = Depends(get_config),
):
    """Record the point adjustments for attendance status changes."""
    adjustments = attendance_points.apply_attendance_changes(
        engine, ctx, changes, max_batch_size=cfg.max_batch_size
    )
    return {"success": True, "data": {"pointUpdates": [a.as_dict() for a in adjustments]}}


# ---------------------------------------------------------------------------
# GET /points-data
# ---------------------------------------------------------------------------
@router.get("/points-data")
def get_points_data(
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    """All groups and participants with their totals."""
    return {"success": True, **aggregation.points_data(engine, ctx.organization_id)}


# ---------------------------------------------------------------------------
# GET /points-leaderboard
# ---------------------------------------------------------------------------
@router.get("/points-leaderboard")
def get_leaderboard(
    type: str = Query("individuals", pattern="^(groups|individuals)$"),
    limit: int | None = Query(None, ge=1),
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
    cfg: PointkeeperConfig = Depends(get_config),
):
    """Top groups or individuals by total points."""
    scope = "group" if type == "groups" else "individual"
    rows = aggregation.leaderboard(
        engine,
        ctx.organization_id,
        scope=scope,
        limit=limit or cfg.default_leaderboard_limit,
    )
    return {"success": True, "data": rows, "type": type}


# ---------------------------------------------------------------------------
# GET /points-report
# ---------------------------------------------------------------------------
@router.get("/points-report")
def get_points_report(
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    return {"success": True, "data": aggregation.report(engine, ctx.organization_id)}


# ---------------------------------------------------------------------------
# GET /groups/{group_id}/points
# ---------------------------------------------------------------------------
@router.get("/groups/{group_id}/points")
def get_group_points(
    group_id: int,
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    return {
        "success": True,
        "data": aggregation.group_detail(engine, ctx.organization_id, group_id),
    }


# ---------------------------------------------------------------------------
# GET /points-totals
# ---------------------------------------------------------------------------
@router.get("/points-totals")
def get_points_totals(
    participant_id: int | None = Query(None),
    group_id: int | None = Query(None),
    ctx: OperationContext = Depends(get_context),
    engine: Engine = Depends(get_engine),
):
    """Live total for one participant or one group (group-level rows)."""
    total = aggregation.totals_for(
        engine, ctx.organization_id, participant_id=participant_id, group_id=group_id
    )
    return {
        "success": True,
        "participant_id": participant_id,
        "group_id": group_id,
        "total_points": total,
    }
