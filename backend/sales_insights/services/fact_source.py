from __future__ import annotations

from typing import Callable, List, Optional, Protocol, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import SalesFact, SessionLocal
from ..models.entities import AMOUNT, VOLUME, PeriodColumn, RawFact
from ..utils.logger import get_logger

log = get_logger("service.facts")

# values_type tokens stored per measure
MEASURE_VALUE_TYPES = {
    VOLUME: ("KGS", "VOLUME"),
    AMOUNT: ("AMOUNT",),
}


class FactSource(Protocol):
    def fetch_facts(
        self,
        division: str,
        column: PeriodColumn,
        measure: str,
        sales_reps: Optional[Sequence[str]] = None,
    ) -> List[RawFact]:
        ...

    def list_sales_reps(self, division: str) -> List[str]:
        ...


def fact_type(column: PeriodColumn) -> str:
    """Data type stored on fact rows for a column ('FY Budget' columns read Budget rows)."""
    return "BUDGET" if column.is_budget else column.type.strip().upper()


class SqlFactSource:
    """Reads facts grouped by (customer, sales rep) and summed over the column's months."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def fetch_facts(
        self,
        division: str,
        column: PeriodColumn,
        measure: str,
        sales_reps: Optional[Sequence[str]] = None,
    ) -> List[RawFact]:
        if measure not in MEASURE_VALUE_TYPES:
            raise ValueError(f"Unknown measure '{measure}'")
        with self._session_factory() as db:
            q = (
                db.query(SalesFact.customer_name, SalesFact.sales_rep, func.sum(SalesFact.value))
                .filter(func.upper(SalesFact.division) == division.strip().upper())
                .filter(SalesFact.year == column.year)
                .filter(SalesFact.month.in_(list(column.months)))
                .filter(func.upper(SalesFact.type) == fact_type(column))
                .filter(func.upper(SalesFact.values_type).in_(MEASURE_VALUE_TYPES[measure]))
                .filter(SalesFact.customer_name.isnot(None))
                .filter(func.trim(SalesFact.customer_name) != "")
            )
            if sales_reps:
                q = q.filter(
                    func.upper(func.trim(SalesFact.sales_rep)).in_([str(r).strip().upper() for r in sales_reps])
                )
            rows = q.group_by(SalesFact.customer_name, SalesFact.sales_rep).all()

        facts = [
            RawFact(
                customer=name,
                period_key=column.key,
                measure=measure,
                value=float(total or 0.0),
                sales_rep=(rep or "").strip(),
            )
            for name, rep, total in rows
        ]
        log.debug(f"Fetched {len(facts)} {measure} rows for {division} {column.key}")
        return facts

    def list_sales_reps(self, division: str) -> List[str]:
        with self._session_factory() as db:
            rows = (
                db.query(func.trim(SalesFact.sales_rep))
                .filter(func.upper(SalesFact.division) == division.strip().upper())
                .filter(SalesFact.sales_rep.isnot(None))
                .filter(func.trim(SalesFact.sales_rep) != "")
                .distinct()
                .all()
            )
        return sorted({r[0] for r in rows}, key=str.lower)
