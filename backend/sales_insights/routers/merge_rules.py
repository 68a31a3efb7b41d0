from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..models.schemas import AddMergeRuleRequest, SaveMergeRulesRequest
from ..services.config_service import get_division_info
from ..services.rule_store import SqlMergeRuleStore, clean_rule
from ..utils.logger import get_logger
from .deps import get_rule_store

router = APIRouter(prefix="/merge-rules", tags=["merge-rules"])
log = get_logger("router.merge_rules")


@router.post("/add")
def add_rule(payload: AddMergeRuleRequest, store: SqlMergeRuleStore = Depends(get_rule_store)):
    try:
        get_division_info(payload.division)
        rule = clean_rule(
            payload.division,
            payload.merge_rule.merged_name,
            payload.merge_rule.original_customers,
            sales_rep=payload.sales_rep,
            is_active=payload.merge_rule.is_active,
        )
        saved = store.add_rule(rule)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "data": saved.to_dict()}


@router.post("/save")
def save_rules(payload: SaveMergeRulesRequest, store: SqlMergeRuleStore = Depends(get_rule_store)):
    try:
        get_division_info(payload.division)
        rules = [
            clean_rule(payload.division, r.merged_name, r.original_customers, payload.sales_rep, r.is_active)
            for r in payload.merge_rules
        ]
        saved = store.save_rules(payload.division, payload.sales_rep, rules)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    log.info(f"Saved {len(saved)} merge rules for {payload.division}/{payload.sales_rep or '*'}")
    return {"success": True, "data": [r.to_dict() for r in saved]}


@router.get("/get")
def get_rules(
    division: str = Query(...),
    sales_rep: Optional[str] = Query(None),
    store: SqlMergeRuleStore = Depends(get_rule_store),
):
    try:
        rules = store.get_rules(division, sales_rep)
        has_rules = bool(rules)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "data": [r.to_dict() for r in rules], "hasRules": has_rules}


@router.get("/division")
def get_division_rules(division: str = Query(...), store: SqlMergeRuleStore = Depends(get_rule_store)):
    try:
        rules = store.get_all_rules_for_division(division)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "data": [r.to_dict() for r in rules]}


@router.delete("/delete")
def delete_rule(
    division: str = Query(...),
    merged_name: str = Query(...),
    sales_rep: Optional[str] = Query(None),
    store: SqlMergeRuleStore = Depends(get_rule_store),
):
    try:
        deleted = store.delete_rule(division, sales_rep, merged_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Merge rule '{merged_name}' not found")
    return {"success": True, "deletedCount": deleted}


@router.delete("/reset")
def reset_rules(store: SqlMergeRuleStore = Depends(get_rule_store)):
    return {"success": True, "deletedCount": store.reset_all()}
