from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from ..models.entities import MEASURES
from ..models.schemas import RepGroupIn, SalesRepReportRequest
from ..services.config_service import get_division_info
from ..services.fact_source import SqlFactSource
from ..services.report_service import build_sales_rep_report
from ..services.rule_store import SqlRepGroupStore
from ..utils.logger import get_logger
from .deps import get_fact_source, get_group_store

router = APIRouter(prefix="/sales-reps", tags=["sales-reps"])
log = get_logger("router.sales_reps")


@router.post("/matrix")
async def sales_rep_matrix(
    payload: SalesRepReportRequest,
    facts: SqlFactSource = Depends(get_fact_source),
    groups: SqlRepGroupStore = Depends(get_group_store),
):
    log.info(f"/sales-reps/matrix called - division={payload.division}, measure={payload.measure}")
    try:
        if payload.measure not in MEASURES:
            raise ValueError(f"measure must be one of {list(MEASURES)}")
        columns = [c.to_column() for c in payload.columns]
        matrix, failed = await build_sales_rep_report(payload.division, columns, facts, groups, payload.measure)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    result = matrix.to_dict()
    result["failedPeriods"] = failed
    return result


@router.get("/list")
def list_sales_reps(division: str = Query(...), facts: SqlFactSource = Depends(get_fact_source)):
    try:
        get_division_info(division)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"division": division.upper(), "salesReps": facts.list_sales_reps(division)}


@router.get("/groups")
def get_groups(division: str = Query(...), store: SqlRepGroupStore = Depends(get_group_store)):
    try:
        return {"division": division.upper(), "groups": [g.to_dict() for g in store.get_groups(division)]}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/groups")
def save_group(payload: RepGroupIn, store: SqlRepGroupStore = Depends(get_group_store)):
    try:
        get_division_info(payload.division)
        group = store.save_group(payload.division, payload.group_name, payload.members)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "group": group.to_dict()}


@router.delete("/groups")
def delete_group(
    division: str = Query(...),
    group_name: str = Query(...),
    store: SqlRepGroupStore = Depends(get_group_store),
):
    try:
        deleted = store.delete_group(division, group_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Group '{group_name}' not found")
    return {"success": True, "deletedCount": deleted}
