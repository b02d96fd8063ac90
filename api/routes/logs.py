# api/routes/logs.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from api.routes.dependencies import get_audit_store
from api.schemas.logs import ActivityLogOut, ActivityStatsOut, CallLogOut
from api.services.audit_log import SqlAuditLogStore

router = APIRouter(tags=["logs"])


@router.get("/logs", response_model=List[CallLogOut])
async def list_call_logs(store: SqlAuditLogStore = Depends(get_audit_store)):
    return [record.to_dict() for record in await store.list_calls()]


@router.get("/activity", response_model=List[ActivityLogOut])
async def list_activity(
    limit: int = Query(default=50, ge=1, le=500),
    store: SqlAuditLogStore = Depends(get_audit_store),
):
    return [record.to_dict() for record in await store.list_activity(limit)]


@router.get("/activity/stats", response_model=ActivityStatsOut)
async def activity_stats(store: SqlAuditLogStore = Depends(get_audit_store)):
    stats = await store.activity_stats()
    return stats.to_dict()
