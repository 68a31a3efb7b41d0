from __future__ import annotations

from fastapi import APIRouter, HTTPException

from ..models.schemas import InsightsConfigUpdate
from ..services.config_service import (
    get_division_info,
    get_runtime_config,
    reset_runtime_config,
    update_runtime_config,
)
from ..utils.logger import get_logger

router = APIRouter(tags=["config"])
log = get_logger("router.config")


@router.get("/insights/config")
async def get_config():
    return {"config": get_runtime_config()}


@router.post("/insights/config")
async def post_config(payload: InsightsConfigUpdate):
    try:
        saved = update_runtime_config(payload.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"config": saved}


@router.delete("/insights/config")
async def delete_config():
    log.info("Resetting insight settings to defaults")
    return {"config": reset_runtime_config()}


@router.get("/divisions/{division}")
async def division_info(division: str):
    try:
        return get_division_info(division)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
