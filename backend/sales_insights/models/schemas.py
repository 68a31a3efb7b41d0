from __future__ import annotations
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.entities import AMOUNT, VOLUME, PeriodColumn
from ..services.periods import make_column


class PeriodColumnIn(BaseModel):
    year: int
    month: str = Field(..., description="FY, HY1, Q3, a month name or CUSTOM_<Month>_<Month>")
    type: str = "Actual"
    months: Optional[List[str]] = None
    display_name: Optional[str] = None

    def to_column(self) -> PeriodColumn:
        return make_column(self.year, self.month, self.type, self.months, self.display_name)


class CustomerReportRequest(BaseModel):
    division: str = "FP"
    columns: List[PeriodColumnIn]
    sales_rep: Optional[str] = Field(None, description="Sales rep, group name, or None/ALL for the whole division")
    measure: str = VOLUME
    scope: str = "rep"
    base_period_index: int = 0
    hide_budget_forecast: bool = False


class CustomerInsightsRequest(BaseModel):
    division: str = "FP"
    columns: List[PeriodColumnIn]
    sales_rep: Optional[str] = None
    scope: str = "rep"
    base_period_index: int = 0


class DivisionInsightsRequest(BaseModel):
    division: str = "FP"
    column: PeriodColumnIn
    measure: str = AMOUNT


class SalesRepReportRequest(BaseModel):
    division: str = "FP"
    columns: List[PeriodColumnIn]
    measure: str = VOLUME


class MergeRuleIn(BaseModel):
    merged_name: str
    original_customers: List[str]
    is_active: bool = True


class AddMergeRuleRequest(BaseModel):
    division: str
    sales_rep: Optional[str] = None
    merge_rule: MergeRuleIn


class SaveMergeRulesRequest(BaseModel):
    division: str
    sales_rep: Optional[str] = None
    merge_rules: List[MergeRuleIn]


class RepGroupIn(BaseModel):
    division: str
    group_name: str
    members: List[str]


class InsightsConfigUpdate(BaseModel):
    top_n: Optional[int] = None
    concentration_critical_top1: Optional[float] = None
    concentration_high_top1: Optional[float] = None
    concentration_high_top3: Optional[float] = None
    concentration_medium_top1: Optional[float] = None
    concentration_medium_top3: Optional[float] = None
    churn_high: Optional[float] = None
    churn_medium: Optional[float] = None
    runrate_warn: Optional[float] = None
    outlier_z_threshold: Optional[float] = None
    outlier_max: Optional[int] = None
    min_volume_share: Optional[float] = None
    min_absolute_volume_mt: Optional[float] = None
    min_performance_gap: Optional[float] = None
    advantage_max: Optional[int] = None
    kilo_rate_min_share: Optional[float] = None
    cum_share_target: Optional[float] = None
    max_focus: Optional[int] = None
    max_list: Optional[int] = None
    underperf_vol_pct: Optional[float] = None
    underperf_yoy_vol: Optional[float] = None
    growth_vol_pct: Optional[float] = None
    growth_yoy_vol: Optional[float] = None
