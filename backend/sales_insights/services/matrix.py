from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..models.entities import CanonicalEntity, DeltaColumn, PeriodColumn, RawFact, RepGroup
from ..utils.logger import get_logger
from .normalizer import normalize
from .periods import Delta, calculate_delta, extend_with_deltas

log = get_logger("service.matrix")

FactIndex = Dict[Tuple[str, str], float]


def index_facts(facts: Iterable[RawFact]) -> FactIndex:
    """(normalized rep, normalized customer) -> summed value, built once per period."""
    idx: FactIndex = {}
    for f in facts:
        cust = normalize(f.customer)
        if not cust:
            continue
        key = (normalize(f.sales_rep), cust)
        idx[key] = idx.get(key, 0.0) + float(f.value or 0.0)
    return idx


class PeriodMatrix:
    """Dense customer x period lookup with precomputed period totals.

    Built once by :func:`build_matrix`; all reads are O(1) and nothing mutates
    the underlying frame afterwards.
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        entities: Sequence[CanonicalEntity],
        columns: Sequence[PeriodColumn],
        measure: str,
        raw_totals: Optional[Mapping[str, float]] = None,
    ) -> None:
        self._frame = frame
        self._entities = tuple(entities)
        self._columns = tuple(columns)
        self.measure = measure
        self._by_label = {normalize(e.label): e for e in self._entities}
        self._period_totals = {c.key: float(frame[c.key].sum()) if len(frame) else 0.0 for c in self._columns}
        self._raw_totals = dict(raw_totals or self._period_totals)

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    @property
    def entities(self) -> Tuple[CanonicalEntity, ...]:
        return self._entities

    @property
    def columns(self) -> Tuple[PeriodColumn, ...]:
        return self._columns

    @property
    def labels(self) -> List[str]:
        return [e.label for e in self._entities]

    @property
    def column_keys(self) -> List[str]:
        return [c.key for c in self._columns]

    def entity(self, label: str) -> Optional[CanonicalEntity]:
        return self._by_label.get(normalize(label))

    def has_column(self, key: str) -> bool:
        return key in self._period_totals

    def _row_label(self, label: str) -> Optional[str]:
        e = self._by_label.get(normalize(label))
        return e.label if e else None

    def get_value(self, label: str, period_key: str) -> float:
        if period_key not in self._period_totals:
            raise KeyError(f"Unknown period '{period_key}'")
        row = self._row_label(label)
        if row is None:
            return 0.0
        return float(self._frame.at[row, period_key])

    def get_percent(self, label: str, period_key: str) -> float:
        total = self.period_total(period_key)
        if total == 0:
            return 0.0
        return self.get_value(label, period_key) / total * 100

    def get_delta(self, label: str, from_key: str, to_key: str) -> Delta:
        return calculate_delta(self.get_value(label, from_key), self.get_value(label, to_key))

    def period_total(self, period_key: str) -> float:
        if period_key not in self._period_totals:
            raise KeyError(f"Unknown period '{period_key}'")
        return self._period_totals[period_key]

    def raw_total(self, period_key: str) -> float:
        return self._raw_totals.get(period_key, 0.0)

    def values_at(self, period_key: str) -> pd.Series:
        if period_key not in self._period_totals:
            raise KeyError(f"Unknown period '{period_key}'")
        return self._frame[period_key].copy()

    def sorted_labels(self, period_key: str) -> List[str]:
        """Labels by value at the period, descending; ties broken by label."""
        return sorted(self.labels, key=lambda lbl: (-self.get_value(lbl, period_key), normalize(lbl)))

    def extended_columns(self, hide_budget_forecast: bool = False) -> List[Union[PeriodColumn, DeltaColumn]]:
        return extend_with_deltas(self._columns, hide_budget_forecast)

    def row(self, label: str, hide_budget_forecast: bool = False) -> Dict[str, Any]:
        entity = self.entity(label)
        values: Dict[str, Any] = {}
        for col in self.extended_columns(hide_budget_forecast):
            if isinstance(col, DeltaColumn):
                values[col.key] = self.get_delta(label, col.from_column.key, col.to_column.key)
            else:
                values[col.key] = {
                    "value": self.get_value(label, col.key),
                    "percent": self.get_percent(label, col.key),
                }
        if entity is None:
            entity = CanonicalEntity(label=label, is_merged=False, constituents=(), contributing_reps=())
        return {**entity.to_dict(), "values": values}

    def to_dict(self, labels: Optional[Sequence[str]] = None, hide_budget_forecast: bool = False) -> Dict[str, Any]:
        chosen = self.labels if labels is None else list(labels)
        return {
            "measure": self.measure,
            "columns": [
                c.to_dict() for c in self.extended_columns(hide_budget_forecast)
            ],
            "rows": [self.row(lbl, hide_budget_forecast) for lbl in chosen],
            "totals": {k: v for k, v in self._period_totals.items()},
        }


def build_matrix(
    entities: Sequence[CanonicalEntity],
    columns: Sequence[PeriodColumn],
    facts_by_period: Mapping[str, Iterable[RawFact]],
    measure: str,
) -> PeriodMatrix:
    """Sum each entity's member facts per period into a dense matrix.

    Missing periods in ``facts_by_period`` resolve to zero for every entity.
    """
    keys = [c.key for c in columns]
    labels = [e.label for e in entities]
    data = np.zeros((len(entities), len(keys)), dtype=float)
    raw_totals: Dict[str, float] = {}

    for j, col in enumerate(columns):
        idx = index_facts(facts_by_period.get(col.key, []))
        raw_totals[col.key] = float(sum(idx.values()))
        owned = set()
        for i, entity in enumerate(entities):
            total = 0.0
            for member in entity.members:
                v = idx.get(member)
                if v is not None:
                    total += v
                    owned.add(member)
            data[i, j] = total
        missing = [k for k in idx if k not in owned]
        if missing:
            log.warning(
                f"{len(missing)} {measure} rows in {col.key} are not owned by any customer entity "
                f"(unassigned value={sum(idx[k] for k in missing):.2f})"
            )

    frame = pd.DataFrame(data, index=pd.Index(labels, name="customer"), columns=keys)
    log.info(f"Built {measure} matrix: customers={len(labels)}, periods={len(keys)}")
    return PeriodMatrix(frame, entities, columns, measure, raw_totals)


def expand_reps(selection: Optional[str], groups: Sequence[RepGroup]) -> Optional[List[str]]:
    """A group name resolves to its members, a rep name to itself, None/'ALL' to every rep."""
    if selection is None or not str(selection).strip() or normalize(selection) == "all":
        return None
    for g in groups:
        if normalize(g.group_name) == normalize(selection):
            members = []
            seen = set()
            for m in g.members:
                if normalize(m) and normalize(m) not in seen:
                    seen.add(normalize(m))
                    members.append(m.strip())
            return members
    return [str(selection).strip()]


def display_reps(all_reps: Sequence[str], groups: Sequence[RepGroup]) -> List[Tuple[str, List[str]]]:
    """Groups first, then reps not belonging to any group."""
    canonical = {normalize(r): r for r in all_reps}
    out: List[Tuple[str, List[str]]] = []
    grouped = set()
    for g in groups:
        members = []
        for m in g.members:
            name = canonical.get(normalize(m), m)
            if normalize(name) not in {normalize(x) for x in members}:
                members.append(name)
            grouped.add(normalize(m))
        out.append((g.group_name, members))
    for r in all_reps:
        if normalize(r) not in grouped:
            out.append((r, [r]))
    return out


def build_rep_matrix(
    columns: Sequence[PeriodColumn],
    facts_by_period: Mapping[str, Iterable[RawFact]],
    groups: Sequence[RepGroup],
    measure: str,
) -> PeriodMatrix:
    """Sales rep (or group) x period totals, summing each group's members."""
    all_reps: List[str] = []
    seen = set()
    for col in columns:
        for f in facts_by_period.get(col.key, []):
            if normalize(f.sales_rep) and normalize(f.sales_rep) not in seen:
                seen.add(normalize(f.sales_rep))
                all_reps.append(f.sales_rep.strip())

    rep_entities: List[CanonicalEntity] = []
    totals_by_rep: Dict[str, Dict[str, float]] = {}
    for col in columns:
        per_rep: Dict[str, float] = {}
        for f in facts_by_period.get(col.key, []):
            per_rep[normalize(f.sales_rep)] = per_rep.get(normalize(f.sales_rep), 0.0) + float(f.value or 0.0)
        totals_by_rep[col.key] = per_rep

    data = []
    for name, members in display_reps(sorted(all_reps, key=normalize), groups):
        member_keys = [normalize(m) for m in members]
        row = [sum(totals_by_rep[c.key].get(k, 0.0) for k in member_keys) for c in columns]
        rep_entities.append(
            CanonicalEntity(
                label=name,
                is_merged=len(members) > 1,
                constituents=tuple(members),
                contributing_reps=tuple(members),
                value=float(sum(row)),
            )
        )
        data.append(row)

    frame = pd.DataFrame(
        np.array(data, dtype=float).reshape(len(rep_entities), len(columns)),
        index=pd.Index([e.label for e in rep_entities], name="sales_rep"),
        columns=[c.key for c in columns],
    )
    return PeriodMatrix(frame, rep_entities, columns, measure)
