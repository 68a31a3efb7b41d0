from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Union

from ..models.entities import DeltaColumn, PeriodColumn
from .normalizer import normalize

NEW = "NEW"

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

_MONTH_LOOKUP = {}
for _i, _name in enumerate(MONTH_NAMES, start=1):
    _MONTH_LOOKUP[_name.lower()] = _i
    _MONTH_LOOKUP[_name[:3].lower()] = _i
_MONTH_LOOKUP["sept"] = 9

FULL_YEAR = list(range(1, 13))
PERIOD_MONTHS = {
    "fy": FULL_YEAR,
    "year": FULL_YEAR,
    "full year": FULL_YEAR,
    "hy1": [1, 2, 3, 4, 5, 6],
    "hy2": [7, 8, 9, 10, 11, 12],
    "q1": [1, 2, 3],
    "q2": [4, 5, 6],
    "q3": [7, 8, 9],
    "q4": [10, 11, 12],
}

FULL_YEAR_SPECS = {"fy", "year", "full year", "fullyear", "full-year", "full_year"}

Delta = Union[float, str]


def month_to_number(value) -> Optional[int]:
    """'March' / 'mar' / 3 / '3' -> 3; anything else -> None."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        if value != value:  # NaN
            return None
        n = int(value)
        return n if 1 <= n <= 12 else None
    s = normalize(value)
    if s in _MONTH_LOOKUP:
        return _MONTH_LOOKUP[s]
    if s.isdigit():
        n = int(s)
        return n if 1 <= n <= 12 else None
    return None


def months_for(month_spec: str) -> List[int]:
    """Expand a symbolic period (FY, HY1, Q3, March, CUSTOM_January_February...) to month numbers."""
    s = normalize(month_spec)
    if s in PERIOD_MONTHS:
        return list(PERIOD_MONTHS[s])
    single = month_to_number(s)
    if single is not None:
        return [single]
    if s.startswith("custom_"):
        months = [month_to_number(part) for part in s.split("_")[1:]]
        if months and all(m is not None for m in months):
            ordered = sorted(set(months))
            if ordered != list(range(ordered[0], ordered[-1] + 1)):
                raise ValueError(f"Custom range months must be consecutive: {month_spec}")
            return ordered
    raise ValueError(f"Unknown period '{month_spec}'")


def make_column(
    year: int,
    month_spec: str,
    type: str = "Actual",
    months: Optional[Iterable] = None,
    display_name: Optional[str] = None,
) -> PeriodColumn:
    if months:
        resolved = []
        for m in months:
            n = month_to_number(m)
            if n is None:
                raise ValueError(f"Invalid month '{m}' in column {year}-{month_spec}")
            resolved.append(n)
        month_list = sorted(set(resolved))
    else:
        month_list = months_for(month_spec)
    return PeriodColumn(
        year=int(year),
        month_spec=str(month_spec).strip(),
        type=str(type or "Actual").strip(),
        months=tuple(month_list),
        display_name=display_name,
    )


def format_month_range(months: Sequence[int]) -> str:
    if not months:
        return ""
    if len(months) == 1:
        return MONTH_NAMES[months[0] - 1]
    return f"{MONTH_NAMES[months[0] - 1][:3]}-{MONTH_NAMES[months[-1] - 1][:3]}"


def filter_columns(columns: Sequence[PeriodColumn], hide_budget_forecast: bool = False) -> List[PeriodColumn]:
    if not hide_budget_forecast:
        return list(columns)
    return [c for c in columns if not (c.is_budget or c.is_forecast)]


def extend_with_deltas(
    columns: Sequence[PeriodColumn], hide_budget_forecast: bool = False
) -> List[Union[PeriodColumn, DeltaColumn]]:
    visible = filter_columns(columns, hide_budget_forecast)
    out: List[Union[PeriodColumn, DeltaColumn]] = []
    for i, col in enumerate(visible):
        out.append(col)
        if i < len(visible) - 1:
            out.append(DeltaColumn(from_column=col, to_column=visible[i + 1]))
    return out


def remap_base_index(
    columns: Sequence[PeriodColumn], base_index: Optional[int], hide_budget_forecast: bool = False
) -> int:
    """Position of the selected base period after Budget/Forecast columns were hidden (0 if it was hidden)."""
    visible = filter_columns(columns, hide_budget_forecast)
    if not visible or base_index is None or base_index < 0 or base_index >= len(columns):
        return 0
    base = columns[base_index]
    for i, col in enumerate(visible):
        if col.key == base.key:
            return i
    return 0


def calculate_delta(from_value: float, to_value: float) -> Delta:
    if from_value == 0:
        return NEW if to_value > 0 else 0
    return (to_value - from_value) / from_value * 100


def ratio_pct(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None or b is None or b <= 0:
        return None
    return (a - b) / b * 100


def safe_div(a: float, b: float, default: float = 0.0) -> float:
    return a / b if b else default


def _same_months(a: PeriodColumn, b: PeriodColumn) -> bool:
    return a.months == b.months


def _is_full_year(col: PeriodColumn) -> bool:
    return normalize(col.month_spec) in FULL_YEAR_SPECS or list(col.months) == FULL_YEAR


def find_column(columns: Sequence[PeriodColumn], key: str) -> Optional[PeriodColumn]:
    for col in columns:
        if col.key == key:
            return col
    return None


def find_previous_year_column(columns: Sequence[PeriodColumn], base: PeriodColumn) -> Optional[PeriodColumn]:
    candidates = [c for c in columns if c.year == base.year - 1 and _same_months(c, base)]
    if not candidates:
        return None
    actual = [c for c in candidates if c.is_actual]
    return (actual or candidates)[0]


def find_budget_column(columns: Sequence[PeriodColumn], base: PeriodColumn) -> Optional[PeriodColumn]:
    budgets = [c for c in columns if c.is_budget]
    for c in budgets:
        if c.year == base.year and _same_months(c, base):
            return c
    for c in budgets:
        if c.year == base.year and _is_full_year(c):
            return c
    for c in budgets:
        if c.year == base.year:
            return c
    return budgets[0] if budgets else None


def find_full_year_budget_column(columns: Sequence[PeriodColumn], base: PeriodColumn) -> Optional[PeriodColumn]:
    for c in columns:
        if c.is_budget and c.year == base.year and _is_full_year(c):
            return c
    return None


def month_number(column: PeriodColumn) -> int:
    """Last calendar month covered by the column."""
    return max(column.months) if column.months else 12
