from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import date
from time import perf_counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..config import defaults, settings
from ..models.entities import AMOUNT, MEASURES, VOLUME, CanonicalEntity, PeriodColumn, RawFact
from ..utils.logger import get_logger
from .aggregator import SCOPE_REP, resolve_entities
from .config_service import get_runtime_config, validate_division
from .fact_source import FactSource
from .insights import InsightsSnapshot, InsightThresholds, compute_insights, top_n_summary
from .matrix import PeriodMatrix, build_matrix, build_rep_matrix, expand_reps
from .periods import remap_base_index
from .rule_store import MergeRuleStore, RepGroupStore

log = get_logger("service.report")

FactsByMeasure = Dict[str, Dict[str, List[RawFact]]]


class CustomerReport:
    """Resolved customers and one matrix per measure for a list of period columns.

    Reads are answered from the prebuilt matrices; the insights snapshot is
    computed on request for the chosen base period.
    """

    def __init__(
        self,
        division: str,
        columns: Sequence[PeriodColumn],
        entities: Sequence[CanonicalEntity],
        matrices: Dict[str, PeriodMatrix],
        failed_periods: Sequence[str] = (),
        sales_reps: Optional[Sequence[str]] = None,
        base_key: Optional[str] = None,
        thresholds: Optional[InsightThresholds] = None,
        today: Optional[date] = None,
    ) -> None:
        self.division = division
        self.columns = tuple(columns)
        self.entities = tuple(entities)
        self.matrices = dict(matrices)
        self.failed_periods = list(failed_periods)
        self.sales_reps = list(sales_reps) if sales_reps else None
        self.base_key = base_key or (self.columns[0].key if self.columns else None)
        self.thresholds = thresholds or InsightThresholds()
        self.today = today

    def matrix(self, measure: str = VOLUME) -> PeriodMatrix:
        if measure not in self.matrices:
            raise KeyError(f"Measure '{measure}' was not loaded for this report")
        return self.matrices[measure]

    def get_value(self, label: str, period_key: str, measure: str = VOLUME) -> float:
        return self.matrix(measure).get_value(label, period_key)

    def get_percent(self, label: str, period_key: str, measure: str = VOLUME) -> float:
        return self.matrix(measure).get_percent(label, period_key)

    def get_snapshot(self, base_key: Optional[str] = None) -> InsightsSnapshot:
        key = base_key or self.base_key
        if key is None:
            raise ValueError("A base period is required for insights")
        return compute_insights(
            self.matrix(VOLUME),
            key,
            amount=self.matrices.get(AMOUNT),
            thresholds=self.thresholds,
            today=self.today,
            failed_periods=self.failed_periods,
        )

    def to_dict(self, measure: str = VOLUME, hide_budget_forecast: bool = False) -> Dict[str, Any]:
        matrix = self.matrix(measure)
        base_index = next((i for i, c in enumerate(self.columns) if c.key == self.base_key), 0)
        labels = matrix.sorted_labels(self.base_key) if self.base_key else None
        out = matrix.to_dict(labels=labels, hide_budget_forecast=hide_budget_forecast)
        out.update({
            "division": self.division,
            "salesReps": self.sales_reps,
            "basePeriod": self.base_key,
            "basePeriodIndex": remap_base_index(self.columns, base_index, hide_budget_forecast),
            "topN": top_n_summary(matrix, self.base_key, self.thresholds.top_n) if self.base_key else None,
            "failedPeriods": self.failed_periods,
        })
        return out


def validate_columns(columns: Sequence[PeriodColumn]) -> None:
    if not columns:
        raise ValueError("At least one period column is required")
    if len(columns) > defaults.MAX_COLUMNS:
        raise ValueError(f"At most {defaults.MAX_COLUMNS} period columns are allowed")
    keys = [c.key for c in columns]
    if len(set(keys)) != len(keys):
        raise ValueError(f"Duplicate period columns: {keys}")


async def _fetch_one(
    source: FactSource,
    division: str,
    column: PeriodColumn,
    measure: str,
    sales_reps: Optional[Sequence[str]],
) -> List[RawFact]:
    return await asyncio.wait_for(
        asyncio.to_thread(source.fetch_facts, division, column, measure, sales_reps),
        timeout=settings.FETCH_TIMEOUT_SEC,
    )


async def fetch_facts(
    source: FactSource,
    division: str,
    columns: Sequence[PeriodColumn],
    measures: Sequence[str] = MEASURES,
    sales_reps: Optional[Sequence[str]] = None,
) -> Tuple[FactsByMeasure, List[str]]:
    """Fetch every (measure, period) concurrently.

    A failed fetch leaves that period empty (all zero) and its key is returned
    in the failed list; other periods are unaffected.
    """
    jobs = [(m, c) for m in measures for c in columns]
    results = await asyncio.gather(
        *(_fetch_one(source, division, c, m, sales_reps) for m, c in jobs),
        return_exceptions=True,
    )
    facts: FactsByMeasure = {m: {c.key: [] for c in columns} for m in measures}
    failed: List[str] = []
    for (measure, column), result in zip(jobs, results):
        if isinstance(result, BaseException):
            log.error(f"Fetching {measure} facts for {division} {column.key} failed, using zeros: {result!r}")
            if column.key not in failed:
                failed.append(column.key)
            continue
        facts[measure][column.key] = list(result)
    return facts, failed


def entity_facts(by_measure: FactsByMeasure, measures: Sequence[str]) -> List[RawFact]:
    """Facts that define the customer universe, valued in a single unit.

    Volume drives the entity value when it was requested, otherwise the first
    measure does. Rows of the other measures still contribute customers, at zero.
    """
    primary = VOLUME if VOLUME in measures else measures[0]
    out: List[RawFact] = []
    for measure in measures:
        for rows in by_measure[measure].values():
            if measure == primary:
                out.extend(rows)
            else:
                out.extend(replace(f, value=0.0) for f in rows)
    return out


async def build_customer_report(
    division: str,
    columns: Sequence[PeriodColumn],
    facts: FactSource,
    rules: MergeRuleStore,
    groups: RepGroupStore,
    sales_rep: Optional[str] = None,
    scope: str = SCOPE_REP,
    measures: Sequence[str] = MEASURES,
    base_key: Optional[str] = None,
    thresholds: Optional[InsightThresholds] = None,
    today: Optional[date] = None,
) -> CustomerReport:
    start = perf_counter()
    division = validate_division(division)
    validate_columns(columns)
    if base_key is not None and base_key not in {c.key for c in columns}:
        raise ValueError(f"Base period '{base_key}' is not one of the requested columns")
    unknown = [m for m in measures if m not in MEASURES]
    if unknown:
        raise ValueError(f"Unknown measures: {unknown}")

    rep_groups = await asyncio.to_thread(groups.get_groups, division)
    sales_reps = expand_reps(sales_rep, rep_groups)
    division_rules = await asyncio.to_thread(rules.get_all_rules_for_division, division)

    by_measure, failed = await fetch_facts(facts, division, columns, measures, sales_reps)
    entities = resolve_entities(entity_facts(by_measure, measures), division_rules, scope=scope, sales_reps=sales_reps)
    matrices = {m: build_matrix(entities, columns, by_measure[m], m) for m in measures}

    if thresholds is None:
        thresholds = InsightThresholds.from_config(get_runtime_config())
    log.info(
        f"Built customer report for {division} rep={sales_rep or 'ALL'} scope={scope}: "
        f"{len(entities)} customers x {len(columns)} periods in {(perf_counter() - start) * 1000:.1f} ms"
        + (f", failed periods: {failed}" if failed else "")
    )
    return CustomerReport(
        division=division,
        columns=columns,
        entities=entities,
        matrices=matrices,
        failed_periods=failed,
        sales_reps=sales_reps,
        base_key=base_key,
        thresholds=thresholds,
        today=today,
    )


async def build_sales_rep_report(
    division: str,
    columns: Sequence[PeriodColumn],
    facts: FactSource,
    groups: RepGroupStore,
    measure: str = VOLUME,
) -> Tuple[PeriodMatrix, List[str]]:
    division = validate_division(division)
    validate_columns(columns)
    rep_groups = await asyncio.to_thread(groups.get_groups, division)
    by_measure, failed = await fetch_facts(facts, division, columns, (measure,))
    return build_rep_matrix(columns, by_measure[measure], rep_groups, measure), failed


def division_customer_shares(matrix: PeriodMatrix, period_key: str) -> Dict[str, Any]:
    """Division-wide customer shares for one period, largest first."""
    total = matrix.period_total(period_key)
    customers = [
        {
            "label": lbl,
            "value": matrix.get_value(lbl, period_key),
            "percent": matrix.get_percent(lbl, period_key),
            "isMerged": bool(matrix.entity(lbl) and matrix.entity(lbl).is_merged),
        }
        for lbl in matrix.sorted_labels(period_key)
    ]
    shares = [c["percent"] for c in customers]
    return {
        "customers": customers,
        "totalCustomers": len(customers),
        "totalSales": total,
        "topCustomer": shares[0] if shares else None,
        "top3Customer": sum(shares[:3]),
        "top5Customer": sum(shares[:5]),
        "avgSalesPerCustomer": total / len(customers) if customers else 0.0,
    }
