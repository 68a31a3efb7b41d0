from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple

VOLUME = "VOLUME"
AMOUNT = "AMOUNT"
MEASURES = (VOLUME, AMOUNT)

MERGE_MARKER = "*"


@dataclass(frozen=True)
class RawFact:
    """One grouped fact row from the data source: a customer's summed value in a period."""

    customer: str
    period_key: str
    measure: str
    value: float
    sales_rep: str


@dataclass(frozen=True)
class MergeRule:
    division: str
    merged_name: str
    original_customers: Tuple[str, ...]
    sales_rep: Optional[str] = None  # None -> division-wide rule
    is_active: bool = True

    @property
    def is_division_wide(self) -> bool:
        return not self.sales_rep

    def to_dict(self) -> Dict[str, Any]:
        return {
            "division": self.division,
            "salesRep": self.sales_rep,
            "mergedName": self.merged_name,
            "originalCustomers": list(self.original_customers),
            "isActive": self.is_active,
        }


@dataclass(frozen=True)
class LineItem:
    """A customer line after one representative's merge rules were applied."""

    name: str
    value: float
    is_merged: bool
    original_customers: Tuple[str, ...]
    sales_rep: str


@dataclass(frozen=True)
class CanonicalEntity:
    label: str
    is_merged: bool
    constituents: Tuple[str, ...]
    contributing_reps: Tuple[str, ...]
    value: float = 0.0
    # normalized (sales_rep, customer) pairs whose facts belong to this entity
    members: Tuple[Tuple[str, str], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "isMerged": self.is_merged,
            "constituents": list(self.constituents),
            "salesReps": list(self.contributing_reps),
        }


@dataclass(frozen=True)
class PeriodColumn:
    year: int
    month_spec: str
    type: str
    months: Tuple[int, ...]
    display_name: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.year}-{self.month_spec}-{self.type}"

    @property
    def is_budget(self) -> bool:
        return self.type.strip().lower() in ("budget", "fy budget", "full year budget")

    @property
    def is_forecast(self) -> bool:
        return self.type.strip().lower() == "forecast"

    @property
    def is_actual(self) -> bool:
        return self.type.strip().lower() == "actual"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "year": self.year,
            "month": self.month_spec,
            "type": self.type,
            "months": list(self.months),
            "displayName": self.display_name or self.month_spec,
        }


@dataclass(frozen=True)
class DeltaColumn:
    from_column: PeriodColumn
    to_column: PeriodColumn

    @property
    def key(self) -> str:
        return f"delta:{self.from_column.key}>{self.to_column.key}"

    def to_dict(self) -> Dict[str, Any]:
        return {"columnType": "delta", "from": self.from_column.key, "to": self.to_column.key}


@dataclass(frozen=True)
class RepGroup:
    group_name: str
    members: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
