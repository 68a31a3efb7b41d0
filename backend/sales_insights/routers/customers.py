from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from ..models.entities import MEASURES, PeriodColumn
from ..models.schemas import (
    CustomerInsightsRequest,
    CustomerReportRequest,
    DivisionInsightsRequest,
    PeriodColumnIn,
)
from ..services.aggregator import SCOPE_DIVISION, SCOPE_REP
from ..services.fact_source import SqlFactSource
from ..services.report_service import build_customer_report, division_customer_shares
from ..services.rule_store import SqlMergeRuleStore, SqlRepGroupStore
from ..utils.logger import get_logger
from .deps import get_fact_source, get_group_store, get_rule_store

router = APIRouter(prefix="/customers", tags=["customers"])
log = get_logger("router.customers")


def _columns(items: List[PeriodColumnIn]) -> List[PeriodColumn]:
    return [c.to_column() for c in items]


def _base_key(columns: List[PeriodColumn], index: int) -> str:
    if index < 0 or index >= len(columns):
        raise ValueError(f"base_period_index {index} is out of range for {len(columns)} columns")
    return columns[index].key


def _check_scope(scope: str) -> None:
    if scope not in (SCOPE_REP, SCOPE_DIVISION):
        raise ValueError(f"scope must be '{SCOPE_REP}' or '{SCOPE_DIVISION}'")


@router.post("/matrix")
async def customer_matrix(
    payload: CustomerReportRequest,
    facts: SqlFactSource = Depends(get_fact_source),
    rules: SqlMergeRuleStore = Depends(get_rule_store),
    groups: SqlRepGroupStore = Depends(get_group_store),
) -> Dict[str, Any]:
    log.info(
        f"/customers/matrix called - division={payload.division}, rep={payload.sales_rep}, "
        f"measure={payload.measure}, columns={len(payload.columns)}"
    )
    try:
        if payload.measure not in MEASURES:
            raise ValueError(f"measure must be one of {list(MEASURES)}")
        _check_scope(payload.scope)
        columns = _columns(payload.columns)
        report = await build_customer_report(
            payload.division,
            columns,
            facts,
            rules,
            groups,
            sales_rep=payload.sales_rep,
            scope=payload.scope,
            measures=(payload.measure,),
            base_key=_base_key(columns, payload.base_period_index),
        )
        return report.to_dict(payload.measure, hide_budget_forecast=payload.hide_budget_forecast)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/insights")
async def customer_insights(
    payload: CustomerInsightsRequest,
    facts: SqlFactSource = Depends(get_fact_source),
    rules: SqlMergeRuleStore = Depends(get_rule_store),
    groups: SqlRepGroupStore = Depends(get_group_store),
) -> Dict[str, Any]:
    log.info(f"/customers/insights called - division={payload.division}, rep={payload.sales_rep}")
    try:
        _check_scope(payload.scope)
        columns = _columns(payload.columns)
        base_key = _base_key(columns, payload.base_period_index)
        report = await build_customer_report(
            payload.division,
            columns,
            facts,
            rules,
            groups,
            sales_rep=payload.sales_rep,
            scope=payload.scope,
            base_key=base_key,
        )
        return report.get_snapshot().to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/division-insights")
async def division_insights(
    payload: DivisionInsightsRequest,
    facts: SqlFactSource = Depends(get_fact_source),
    rules: SqlMergeRuleStore = Depends(get_rule_store),
    groups: SqlRepGroupStore = Depends(get_group_store),
) -> Dict[str, Any]:
    """Division-wide customer shares for a single period, each rep's merge rules applied."""
    try:
        if payload.measure not in MEASURES:
            raise ValueError(f"measure must be one of {list(MEASURES)}")
        column = payload.column.to_column()
        report = await build_customer_report(
            payload.division, [column], facts, rules, groups, measures=(payload.measure,)
        )
        result = division_customer_shares(report.matrix(payload.measure), column.key)
        result["failedPeriods"] = report.failed_periods
        return result
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
