from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..config import defaults
from ..models.entities import PeriodColumn
from ..utils.logger import get_logger
from .matrix import PeriodMatrix
from .normalizer import display_name, key_name
from .periods import (
    find_budget_column,
    find_column,
    find_full_year_budget_column,
    find_previous_year_column,
    month_number,
    ratio_pct,
    safe_div,
)

log = get_logger("service.insights")

LOW = "LOW"
MEDIUM = "MEDIUM"
HIGH = "HIGH"
CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class InsightThresholds:
    top_n: int = defaults.TOP_N
    concentration_critical_top1: float = defaults.CONCENTRATION_CRITICAL_TOP1
    concentration_high_top1: float = defaults.CONCENTRATION_HIGH_TOP1
    concentration_high_top3: float = defaults.CONCENTRATION_HIGH_TOP3
    concentration_medium_top1: float = defaults.CONCENTRATION_MEDIUM_TOP1
    concentration_medium_top3: float = defaults.CONCENTRATION_MEDIUM_TOP3
    churn_high: float = defaults.CHURN_HIGH
    churn_medium: float = defaults.CHURN_MEDIUM
    runrate_warn: float = defaults.RUNRATE_WARN
    outlier_z_threshold: float = defaults.OUTLIER_Z_THRESHOLD
    outlier_max: int = defaults.OUTLIER_MAX
    min_volume_share: float = defaults.MIN_VOLUME_SHARE
    min_absolute_volume_mt: float = defaults.MIN_ABSOLUTE_VOLUME_MT
    min_performance_gap: float = defaults.MIN_PERFORMANCE_GAP
    advantage_max: int = defaults.ADVANTAGE_MAX
    kilo_rate_min_share: float = defaults.KILO_RATE_MIN_SHARE
    cum_share_target: float = defaults.CUM_SHARE_TARGET
    max_focus: int = defaults.MAX_FOCUS
    max_list: int = defaults.MAX_LIST
    underperf_vol_pct: float = defaults.UNDERPERF_VOL_PCT
    underperf_yoy_vol: float = defaults.UNDERPERF_YOY_VOL
    growth_vol_pct: float = defaults.GROWTH_VOL_PCT
    growth_yoy_vol: float = defaults.GROWTH_YOY_VOL

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, Any]] = None) -> "InsightThresholds":
        if not cfg:
            return cls()
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in cfg.items() if k in names})


@dataclass(frozen=True)
class PeriodRefs:
    """Columns the insights are computed against, resolved once from the base period."""

    base: PeriodColumn
    budget: Optional[PeriodColumn] = None
    previous_year: Optional[PeriodColumn] = None
    fy_budget: Optional[PeriodColumn] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "basePeriod": self.base.key,
            "budgetPeriod": self.budget.key if self.budget else None,
            "previousYearPeriod": self.previous_year.key if self.previous_year else None,
            "fyBudgetPeriod": self.fy_budget.key if self.fy_budget else None,
        }


def resolve_period_refs(columns: Sequence[PeriodColumn], base_key: str) -> PeriodRefs:
    base = find_column(columns, base_key)
    if base is None:
        raise KeyError(f"Base period '{base_key}' is not one of the report columns")
    return PeriodRefs(
        base=base,
        budget=find_budget_column(columns, base),
        previous_year=find_previous_year_column(columns, base),
        fy_budget=find_full_year_budget_column(columns, base),
    )


def _value(matrix: Optional[PeriodMatrix], label: str, col: Optional[PeriodColumn]) -> float:
    if matrix is None or col is None:
        return 0.0
    return matrix.get_value(label, col.key)


def _total(matrix: Optional[PeriodMatrix], col: Optional[PeriodColumn]) -> float:
    if matrix is None or col is None:
        return 0.0
    return matrix.period_total(col.key)


def kilo_rate(amount: float, volume_kg: float) -> float:
    """Amount per metric ton; 0 when there is no volume."""
    return amount / (volume_kg / 1000) if volume_kg > 0 else 0.0


# --- Top-N ---
def top_n_summary(matrix: PeriodMatrix, base_key: str, top_n: int = defaults.TOP_N) -> Dict[str, Any]:
    ranked = matrix.sorted_labels(base_key)
    top = ranked[:top_n]
    rest = ranked[top_n:]

    summary: Dict[str, Dict[str, Any]] = {}
    for col in matrix.columns:
        total = matrix.period_total(col.key)
        top_total = sum(matrix.get_value(lbl, col.key) for lbl in top)
        rest_total = sum(matrix.get_value(lbl, col.key) for lbl in rest)
        summary[col.key] = {
            "topTotal": top_total,
            "othersTotal": rest_total,
            "allTotal": total,
            "customersWithData": sum(1 for lbl in matrix.labels if matrix.get_value(lbl, col.key) > 0),
            "topPercentage": safe_div(top_total, total) * 100,
            "othersPercentage": safe_div(rest_total, total) * 100,
        }

    return {
        "basePeriod": base_key,
        "topN": top_n,
        "topCustomers": [
            {
                "label": lbl,
                "value": matrix.get_value(lbl, base_key),
                "percent": matrix.get_percent(lbl, base_key),
            }
            for lbl in top
        ],
        "othersCount": len(rest),
        "totalCustomers": len(ranked),
        "summary": summary,
    }


# --- Concentration ---
def concentration_level(top1: float, top3: float, t: InsightThresholds) -> str:
    if top1 > t.concentration_critical_top1:
        return CRITICAL
    if top1 > t.concentration_high_top1 or top3 > t.concentration_high_top3:
        return HIGH
    if top1 > t.concentration_medium_top1 or top3 > t.concentration_medium_top3:
        return MEDIUM
    return LOW


def concentration_risk(
    volume: PeriodMatrix,
    base_key: str,
    amount: Optional[PeriodMatrix] = None,
    thresholds: Optional[InsightThresholds] = None,
) -> Dict[str, Any]:
    """Share of the base period held by the largest active customers.

    Shares are fractions of ``period_total``; only customers with a positive
    base value count as active.
    """
    t = thresholds or InsightThresholds()
    total = volume.period_total(base_key)
    active = [
        {"name": lbl, "volume": v, "share": safe_div(v, total)}
        for lbl in volume.sorted_labels(base_key)
        if (v := volume.get_value(lbl, base_key)) > 0
    ]
    top1 = active[0]["share"] if active else 0.0
    top3 = sum(c["share"] for c in active[:3])
    top5 = sum(c["share"] for c in active[:5])
    amount_total = amount.period_total(base_key) if amount is not None and amount.has_column(base_key) else 0.0

    return {
        "level": concentration_level(top1, top3, t),
        "customerCount": len(active),
        "totalCustomers": len(volume.labels),
        "top1Share": top1,
        "top3Share": top3,
        "top5Share": top5,
        "avgVolumePerCustomer": safe_div(total, len(active)),
        "customerEfficiency": safe_div(amount_total, total),
        "topCustomers": active[:5],
    }


# --- Retention / churn ---
def churn_level(churn_rate: float, t: InsightThresholds) -> str:
    if churn_rate >= t.churn_high:
        return HIGH
    if churn_rate >= t.churn_medium:
        return MEDIUM
    return LOW


def _active_by_key(matrix: PeriodMatrix, col: PeriodColumn) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for lbl in matrix.sorted_labels(col.key):
        if matrix.get_value(lbl, col.key) > 0:
            out.setdefault(key_name(lbl), lbl)
    return out


def retention_analysis(
    matrix: PeriodMatrix, refs: PeriodRefs, thresholds: Optional[InsightThresholds] = None
) -> Dict[str, Any]:
    """Compare the customers active in the prior-year column with those active in the base column.

    Without a prior-year column nothing is computed: ``available`` is False and
    every rate is None.
    """
    t = thresholds or InsightThresholds()
    if refs.previous_year is None:
        return {
            "available": False,
            "retentionRate": None,
            "churnRate": None,
            "retainedCustomers": 0,
            "lostCustomers": 0,
            "newCustomers": 0,
            "totalPreviousCustomers": 0,
            "totalCurrentCustomers": 0,
            "lostCustomerNames": [],
            "newCustomerNames": [],
            "retentionRisk": None,
        }

    prev = _active_by_key(matrix, refs.previous_year)
    cur = _active_by_key(matrix, refs.base)
    retained = [k for k in prev if k in cur]
    lost = [k for k in prev if k not in cur]
    added = [k for k in cur if k not in prev]

    retention_rate = len(retained) / len(prev) if prev else None
    churn_rate = len(lost) / len(prev) if prev else None
    return {
        "available": True,
        "retentionRate": retention_rate,
        "churnRate": churn_rate,
        "retainedCustomers": len(retained),
        "lostCustomers": len(lost),
        "newCustomers": len(added),
        "totalPreviousCustomers": len(prev),
        "totalCurrentCustomers": len(cur),
        "lostCustomerNames": [display_name(prev[k]) for k in lost][:5],
        "newCustomerNames": [display_name(cur[k]) for k in added][:5],
        "retentionRisk": churn_level(churn_rate, t) if churn_rate is not None else None,
    }


# --- Totals & variances ---
def portfolio_totals(volume: PeriodMatrix, amount: Optional[PeriodMatrix], refs: PeriodRefs) -> Dict[str, float]:
    return {
        "totalActual": _total(volume, refs.base),
        "totalBudget": _total(volume, refs.budget),
        "totalPrev": _total(volume, refs.previous_year),
        "totalFyBudget": _total(volume, refs.fy_budget),
        "totalAmountActual": _total(amount, refs.base),
        "totalAmountBudget": _total(amount, refs.budget),
        "totalAmountPrev": _total(amount, refs.previous_year),
        "totalAmountFyBudget": _total(amount, refs.fy_budget),
    }


def variances(totals: Mapping[str, float]) -> Dict[str, Optional[float]]:
    return {
        "vsBudget": ratio_pct(totals["totalActual"], totals["totalBudget"]),
        "yoy": ratio_pct(totals["totalActual"], totals["totalPrev"]),
        "vsBudgetAmount": ratio_pct(totals["totalAmountActual"], totals["totalAmountBudget"]),
        "yoyAmount": ratio_pct(totals["totalAmountActual"], totals["totalAmountPrev"]),
    }


# --- Kilo rate / PVM ---
def volume_vs_sales(
    volume: PeriodMatrix, amount: Optional[PeriodMatrix], refs: PeriodRefs
) -> List[Dict[str, Any]]:
    """Per-customer volume and amount side by side.

    Both matrices are built from the same entities, so rows are joined on the
    exact label. "Foo*" and an unmerged "Foo" stay separate rows.
    """
    if amount is None:
        return []

    rows: List[Dict[str, Any]] = []
    for label in amount.labels:
        if volume.entity(label) is None:
            continue
        v_act = _value(volume, label, refs.base)
        a_act = _value(amount, label, refs.base)
        v_bud = _value(volume, label, refs.budget)
        a_bud = _value(amount, label, refs.budget)
        v_prev = _value(volume, label, refs.previous_year)
        a_prev = _value(amount, label, refs.previous_year)
        kr = kilo_rate(a_act, v_act)
        kr_prev = kilo_rate(a_prev, v_prev)
        kr_bud = kilo_rate(a_bud, v_bud)
        rows.append({
            "name": label,
            "volumeActual": v_act,
            "amountActual": a_act,
            "volumeBudget": v_bud,
            "amountBudget": a_bud,
            "volumePrev": v_prev,
            "amountPrev": a_prev,
            "kiloRate": kr,
            "kiloRatePrev": kr_prev,
            "kiloRateBudget": kr_bud,
            "volumeVsBudget": ratio_pct(v_act, v_bud),
            "amountVsBudget": ratio_pct(a_act, a_bud),
            "volumeYoY": ratio_pct(v_act, v_prev),
            "amountYoY": ratio_pct(a_act, a_prev),
            "kiloRateYoY": ratio_pct(kr, kr_prev),
            "kiloRateVsBudget": ratio_pct(kr, kr_bud),
        })
    return rows


def kilo_rate_performance(totals: Mapping[str, float]) -> Dict[str, Any]:
    avg = kilo_rate(totals["totalAmountActual"], totals["totalActual"])
    avg_prev = kilo_rate(totals["totalAmountPrev"], totals["totalPrev"])
    avg_budget = kilo_rate(totals["totalAmountBudget"], totals["totalBudget"])
    return {
        "avgKiloRate": avg,
        "avgKiloRatePrev": avg_prev,
        "avgKiloRateBudget": avg_budget,
        "kiloRateYoY": ratio_pct(avg, avg_prev),
        "kiloRateVsBudget": ratio_pct(avg, avg_budget),
    }


def pvm_decomposition(totals: Mapping[str, float]) -> Dict[str, Any]:
    """Price and volume effect against the prior year, or the budget when there is no prior year.

    Mix is not decomposed (it needs product level data) and is always 0.
    """
    act, amt = totals["totalActual"], totals["totalAmountActual"]
    comparisons = (
        ("previousYear", totals["totalPrev"], totals["totalAmountPrev"]),
        ("budget", totals["totalBudget"], totals["totalAmountBudget"]),
    )
    for basis, ref_volume, ref_amount in comparisons:
        if ref_volume > 0 and ref_amount > 0 and act > 0 and amt > 0:
            ref_price = kilo_rate(ref_amount, ref_volume)
            return {
                "priceEffect": (kilo_rate(amt, act) - ref_price) / ref_price * 100,
                "volumeEffect": (act - ref_volume) / ref_volume * 100,
                "mixEffect": 0.0,
                "pvmAvailable": True,
                "comparisonBasis": basis,
            }
    return {"priceEffect": 0.0, "volumeEffect": 0.0, "mixEffect": 0.0, "pvmAvailable": False, "comparisonBasis": None}


# --- Outliers ---
def yoy_outliers(
    matrix: PeriodMatrix, refs: PeriodRefs, thresholds: Optional[InsightThresholds] = None
) -> List[Dict[str, Any]]:
    """Customers whose YoY growth is more than ``outlier_z_threshold`` sample deviations from the mean."""
    t = thresholds or InsightThresholds()
    if refs.previous_year is None:
        return []
    candidates = []
    for lbl in matrix.labels:
        prev = matrix.get_value(lbl, refs.previous_year.key)
        if prev > 0:
            cur = matrix.get_value(lbl, refs.base.key)
            candidates.append((lbl, ratio_pct(cur, prev), cur))
    if len(candidates) < 2:
        return []

    rates = np.array([c[1] for c in candidates], dtype=float)
    mean = float(rates.mean())
    std = float(rates.std(ddof=1))
    if std <= 0:
        return []

    flagged = [
        {"name": lbl, "yoyRate": rate, "zScore": abs(rate - mean) / std, "volume": cur}
        for lbl, rate, cur in candidates
    ]
    flagged = [o for o in flagged if o["zScore"] > t.outlier_z_threshold]
    flagged.sort(key=lambda o: -o["zScore"])
    return flagged[: t.outlier_max]


# --- Run rate ---
def months_remaining(base: PeriodColumn, today: date) -> int:
    if base.year == today.year:
        return max(0, 12 - month_number(base))
    return 12


def run_rate_projection(
    volume: PeriodMatrix,
    refs: PeriodRefs,
    thresholds: Optional[InsightThresholds] = None,
    today: Optional[date] = None,
) -> Optional[Dict[str, Any]]:
    """Annualized pace of the base period against the budget; None without a budget column."""
    t = thresholds or InsightThresholds()
    if refs.budget is None:
        return None
    remaining = months_remaining(refs.base, today or date.today())
    elapsed = max(1, 12 - remaining)
    actual = _total(volume, refs.base)
    fy_budget = _total(volume, refs.fy_budget)
    budget = _total(volume, refs.budget)

    current = actual * 12 / elapsed
    required = fy_budget if fy_budget > 0 else budget * 12 / elapsed
    on_track = current >= required * t.runrate_warn
    catch_up = (required - actual) / remaining if not on_track and remaining > 0 else 0.0

    portfolio_remaining = max(0.0, required - actual)
    return {
        "monthsRemaining": remaining,
        "currentRunRate": current,
        "requiredRunRate": required,
        "isOnTrack": on_track,
        "catchUpRequired": catch_up,
        "portfolioRemaining": portfolio_remaining,
        "portfolioPerMonth": portfolio_remaining / remaining if remaining > 0 else 0.0,
    }


# --- Advantage analysis ---
def _is_material(row: Mapping[str, Any], total_volume: float, t: InsightThresholds) -> bool:
    share = safe_div(row["volumeActual"], total_volume)
    return share >= t.min_volume_share and row["volumeActual"] / 1000 >= t.min_absolute_volume_mt


def advantage_analysis(
    customers: Sequence[Mapping[str, Any]], total_volume: float, thresholds: Optional[InsightThresholds] = None
) -> Dict[str, List[Dict[str, Any]]]:
    """Customers whose volume and amount growth vs budget diverge by more than the performance gap.

    Only material accounts are listed (volume share and absolute tonnage gates).
    """
    t = thresholds or InsightThresholds()
    comparable = [
        dict(c) for c in customers
        if c["volumeVsBudget"] is not None and c["amountVsBudget"] is not None and _is_material(c, total_volume, t)
    ]
    volume_adv = [c for c in comparable if c["volumeVsBudget"] > c["amountVsBudget"] + t.min_performance_gap]
    sales_adv = [c for c in comparable if c["amountVsBudget"] > c["volumeVsBudget"] + t.min_performance_gap]
    volume_adv.sort(key=lambda c: -(c["volumeVsBudget"] - c["amountVsBudget"]))
    sales_adv.sort(key=lambda c: -(c["amountVsBudget"] - c["volumeVsBudget"]))
    return {
        "volumeAdvantage": volume_adv[: t.advantage_max],
        "salesAdvantage": sales_adv[: t.advantage_max],
    }


def top_performers(
    volume: PeriodMatrix,
    customers: Sequence[Mapping[str, Any]],
    refs: PeriodRefs,
    totals: Mapping[str, float],
    thresholds: Optional[InsightThresholds] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    t = thresholds or InsightThresholds()
    base_key = refs.base.key
    total_volume = totals["totalActual"]
    total_amount = totals["totalAmountActual"]

    by_volume = [
        {"name": lbl, "volume": v, "share": safe_div(v, total_volume) * 100}
        for lbl in volume.sorted_labels(base_key)
        if (v := volume.get_value(lbl, base_key)) > 0
    ][:5]
    by_sales = sorted((c for c in customers if c["amountActual"] > 0), key=lambda c: -c["amountActual"])[:5]
    by_rate = sorted(
        (c for c in customers if c["kiloRate"] > 0 and c["volumeActual"] > total_volume * t.kilo_rate_min_share),
        key=lambda c: -c["kiloRate"],
    )[:5]
    return {
        "volume": by_volume,
        "sales": [
            {"name": c["name"], "amount": c["amountActual"], "share": safe_div(c["amountActual"], total_amount) * 100}
            for c in by_sales
        ],
        "kiloRate": [{"name": c["name"], "kiloRate": c["kiloRate"], "volume": c["volumeActual"]} for c in by_rate],
    }


# --- Focus customers ---
def focus_customers(
    volume: PeriodMatrix,
    refs: PeriodRefs,
    remaining: int,
    thresholds: Optional[InsightThresholds] = None,
) -> Dict[str, Any]:
    """Rank customers by materiality x variance and bucket the focus list.

    The focus list takes the highest priorities, then tops up with the largest
    customers until ``cum_share_target`` of the base volume is covered, never
    exceeding ``max_focus`` names.
    """
    t = thresholds or InsightThresholds()
    total = _total(volume, refs.base)

    scored = []
    for lbl in volume.labels:
        actual = _value(volume, lbl, refs.base)
        budget = _value(volume, lbl, refs.budget)
        prev = _value(volume, lbl, refs.previous_year)
        if actual <= 0 and budget <= 0:
            continue
        vs_budget = ratio_pct(actual, budget)
        yoy = ratio_pct(actual, prev)
        share = safe_div(actual, total)
        variance_score = abs(vs_budget or 0) + abs(yoy or 0)
        scored.append({
            "name": lbl,
            "actual": actual,
            "budget": budget,
            "prev": prev,
            "vsBudget": vs_budget,
            "yoy": yoy,
            "share": share,
            "materialityScore": share * 100,
            "varianceScore": variance_score,
            "priorityScore": share * 100 * variance_score,
            "catchUpRequired": (budget - actual) / remaining if remaining > 0 and budget > actual else 0.0,
        })
    scored.sort(key=lambda c: -c["priorityScore"])

    chosen = [c["name"] for c in scored[: t.max_focus]]
    cum_share = 0.0
    for c in sorted(scored, key=lambda c: -c["actual"]):
        if len(chosen) >= t.max_focus:
            break
        cum_share += c["share"]
        if c["name"] not in chosen:
            chosen.append(c["name"])
        if cum_share >= t.cum_share_target:
            break
    focus = [c for c in scored if c["name"] in chosen][: t.max_focus]

    growth = [
        c for c in focus
        if (c["vsBudget"] is not None and c["vsBudget"] >= t.growth_vol_pct)
        or (c["yoy"] is not None and c["yoy"] >= t.growth_yoy_vol)
    ][: t.max_list]
    under = [
        c for c in focus
        if (c["vsBudget"] is not None and c["vsBudget"] <= t.underperf_vol_pct)
        or (c["yoy"] is not None and c["yoy"] <= t.underperf_yoy_vol)
    ][: t.max_list]
    flagged = {c["name"] for c in growth} | {c["name"] for c in under}
    stable = [c for c in focus if c["name"] not in flagged][: t.max_list]

    return {
        "focusCustomers": focus,
        "growthDrivers": growth,
        "underperformers": under,
        "stable": stable,
        "coveragePct": sum(c["share"] for c in focus),
    }


# --- Executive summary ---
def executive_summary(
    variance: Mapping[str, Optional[float]],
    concentration: Mapping[str, Any],
    retention: Mapping[str, Any],
    focus: Mapping[str, Any],
    run_rate: Optional[Mapping[str, Any]],
    advantage: Mapping[str, Sequence[Any]],
) -> Dict[str, Any]:
    vs_budget = variance.get("vsBudget")
    if vs_budget is None:
        health = "UNKNOWN"
    elif vs_budget >= 0:
        health = "ON_TRACK"
    elif vs_budget >= -10:
        health = "AT_RISK"
    else:
        health = "UNDERPERFORMING"

    risks = []
    if concentration["level"] in (HIGH, CRITICAL):
        risks.append("High customer concentration")
    if retention.get("churnRate") is not None and retention["churnRate"] > 0.2:
        risks.append("High customer churn")
    if len(focus["underperformers"]) > len(focus["focusCustomers"]) * 0.4:
        risks.append("Multiple underperforming customers")
    if run_rate is not None and not run_rate["isOnTrack"]:
        risks.append("Behind FY budget pace")

    opportunities = []
    if focus["growthDrivers"]:
        opportunities.append(f"{len(focus['growthDrivers'])} growth drivers identified")
    if advantage["volumeAdvantage"]:
        opportunities.append("Volume efficiency opportunities")
    if advantage["salesAdvantage"]:
        opportunities.append("Price realization opportunities")
    if retention.get("newCustomers"):
        opportunities.append(f"{retention['newCustomers']} new customers acquired")

    return {"portfolioHealth": health, "keyRisks": risks[:3], "opportunities": opportunities[:3]}


# --- Snapshot ---
@dataclass(frozen=True)
class InsightsSnapshot:
    periods: Dict[str, Optional[str]]
    has_previous_year_data: bool
    totals: Dict[str, float]
    variances: Dict[str, Optional[float]]
    top_n: Dict[str, Any]
    concentration: Dict[str, Any]
    retention: Dict[str, Any]
    volume_vs_sales: Dict[str, Any]
    pvm: Dict[str, Any]
    customer_analysis: List[Dict[str, Any]]
    top_performers: Dict[str, List[Dict[str, Any]]]
    advantage: Dict[str, List[Dict[str, Any]]]
    outliers: List[Dict[str, Any]]
    run_rate: Optional[Dict[str, Any]]
    months_remaining: int
    focus: Dict[str, Any]
    executive_summary: Dict[str, Any]
    failed_periods: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy({
            "periods": self.periods,
            "hasPreviousYearData": self.has_previous_year_data,
            "totals": self.totals,
            **self.variances,
            "topN": self.top_n,
            "concentrationRisk": self.concentration,
            "retentionAnalysis": self.retention,
            "runRateInfo": self.run_rate,
            "monthsRemaining": self.months_remaining,
            **self.focus,
            "comprehensiveInsights": {
                "volumeVsSalesPerformance": {
                    "volumeBudgetVar": self.variances["vsBudget"],
                    "salesBudgetVar": self.variances["vsBudgetAmount"],
                    "volumeYoY": self.variances["yoy"],
                    "salesYoY": self.variances["yoyAmount"],
                    **self.volume_vs_sales,
                },
                "pvm": self.pvm,
                "customerAnalysis": self.customer_analysis,
                "topPerformers": self.top_performers,
                "advantageAnalysis": {**self.advantage, "outliers": self.outliers},
            },
            "executiveSummary": self.executive_summary,
            "failedPeriods": self.failed_periods,
        })


def compute_insights(
    volume: PeriodMatrix,
    base_key: str,
    amount: Optional[PeriodMatrix] = None,
    thresholds: Optional[InsightThresholds] = None,
    today: Optional[date] = None,
    failed_periods: Sequence[str] = (),
) -> InsightsSnapshot:
    t = thresholds or InsightThresholds()
    refs = resolve_period_refs(volume.columns, base_key)
    today = today or date.today()

    totals = portfolio_totals(volume, amount, refs)
    variance = variances(totals)
    concentration = concentration_risk(volume, base_key, amount, t)
    retention = retention_analysis(volume, refs, t)
    customers = volume_vs_sales(volume, amount, refs)
    advantage = advantage_analysis(customers, totals["totalActual"], t)
    run_rate = run_rate_projection(volume, refs, t, today)
    remaining = months_remaining(refs.base, today)
    focus = focus_customers(volume, refs, remaining, t)

    has_prev = (
        refs.previous_year is not None and totals["totalPrev"] > 0 and totals["totalAmountPrev"] > 0
    )
    log.info(
        f"Computed insights for {base_key}: customers={len(volume.labels)}, "
        f"concentration={concentration['level']}, prior_year={refs.previous_year.key if refs.previous_year else None}"
    )
    return InsightsSnapshot(
        periods=refs.to_dict(),
        has_previous_year_data=has_prev,
        totals=totals,
        variances=variance,
        top_n=top_n_summary(volume, base_key, t.top_n),
        concentration=concentration,
        retention=retention,
        volume_vs_sales=kilo_rate_performance(totals),
        pvm=pvm_decomposition(totals),
        customer_analysis=customers,
        top_performers=top_performers(volume, customers, refs, totals, t),
        advantage=advantage,
        outliers=yoy_outliers(volume, refs, t),
        run_rate=run_rate,
        months_remaining=remaining,
        focus=focus,
        executive_summary=executive_summary(variance, concentration, retention, focus, run_rate, advantage),
        failed_periods=list(failed_periods),
    )
