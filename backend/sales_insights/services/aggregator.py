from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..models.entities import CanonicalEntity, LineItem, MergeRule, RawFact
from ..utils.logger import get_logger
from .merge_resolver import active_rules, collect_customer_rows, resolve_all_reps, resolve_rep
from .normalizer import normalize

log = get_logger("service.aggregate")

SCOPE_REP = "rep"
SCOPE_DIVISION = "division"


def _append_unique(seq: Tuple[str, ...], values: Iterable[str]) -> Tuple[str, ...]:
    seen = {normalize(v) for v in seq}
    out = list(seq)
    for v in values:
        k = normalize(v)
        if k and k not in seen:
            seen.add(k)
            out.append(v)
    return tuple(out)


def aggregate_line_items(items: Iterable[LineItem]) -> List[CanonicalEntity]:
    """Combine line items of all reps into canonical entities keyed by normalized label.

    Values are summed, constituents and contributing reps unioned; an entity is
    merged when any of its items was. The sum of entity values always equals the
    sum of item values.
    """
    order: List[str] = []
    acc: Dict[str, Dict] = {}
    for item in items:
        key = normalize(item.name)
        if not key:
            continue
        members = tuple((normalize(item.sales_rep), normalize(c)) for c in item.original_customers)
        if key not in acc:
            order.append(key)
            acc[key] = {
                "label": item.name.strip(),
                "value": float(item.value),
                "is_merged": item.is_merged,
                "constituents": _append_unique((), item.original_customers),
                "reps": _append_unique((), [item.sales_rep] if item.sales_rep else []),
                "members": members,
            }
            continue
        cur = acc[key]
        acc[key] = {
            "label": cur["label"],
            "value": cur["value"] + float(item.value),
            "is_merged": cur["is_merged"] or item.is_merged,
            "constituents": _append_unique(cur["constituents"], item.original_customers),
            "reps": _append_unique(cur["reps"], [item.sales_rep] if item.sales_rep else []),
            "members": cur["members"] + members,
        }

    entities = [
        CanonicalEntity(
            label=acc[k]["label"],
            is_merged=acc[k]["is_merged"],
            constituents=acc[k]["constituents"],
            contributing_reps=acc[k]["reps"],
            value=acc[k]["value"],
            members=tuple(sorted(set(acc[k]["members"]))),
        )
        for k in order
    ]
    entities.sort(key=lambda e: (-e.value, normalize(e.label)))
    return entities


def resolve_division(
    rows_by_rep: Mapping[str, Mapping[str, float]], rules: Sequence[MergeRule]
) -> List[LineItem]:
    """Apply every active rule of the division across rep boundaries.

    Rules are resolved once against the division-wide customer list; each rep's
    rows are then re-labelled with the resulting assignment so that values stay
    attributed to the rep that booked them.
    """
    combined: Dict[str, float] = {}
    for rows in rows_by_rep.values():
        for name, value in rows.items():
            combined[name] = combined.get(name, 0.0) + float(value or 0.0)

    division_items = resolve_rep(combined, active_rules(rules), sales_rep="")
    assignment: Dict[str, Tuple[str, bool]] = {}
    for item in division_items:
        for c in item.original_customers:
            assignment[normalize(c)] = (item.name, item.is_merged)

    items: List[LineItem] = []
    for rep, rows in rows_by_rep.items():
        grouped: Dict[str, Dict] = {}
        for name, value in rows.items():
            label, merged = assignment.get(normalize(name), (name, False))
            g = grouped.setdefault(normalize(label), {"label": label, "merged": merged, "value": 0.0, "names": []})
            g["value"] += float(value or 0.0)
            g["names"].append(name)
        for g in grouped.values():
            items.append(
                LineItem(
                    name=g["label"],
                    value=g["value"],
                    is_merged=g["merged"],
                    original_customers=tuple(g["names"]),
                    sales_rep=rep,
                )
            )
    return items


def resolve_entities(
    facts: Iterable[RawFact],
    rules: Sequence[MergeRule],
    scope: str = SCOPE_REP,
    sales_reps: Optional[Sequence[str]] = None,
) -> List[CanonicalEntity]:
    """Raw facts -> canonical customer entities.

    ``sales_reps`` limits resolution to those reps (a group's members); every
    member is resolved with its own rules and the results are summed.
    """
    rows_by_rep = collect_customer_rows(facts)
    if sales_reps:
        wanted = {normalize(r) for r in sales_reps}
        rows_by_rep = {rep: rows for rep, rows in rows_by_rep.items() if normalize(rep) in wanted}

    if scope == SCOPE_DIVISION:
        items = resolve_division(rows_by_rep, rules)
    elif scope == SCOPE_REP:
        items = resolve_all_reps(rows_by_rep, rules)
    else:
        raise ValueError(f"Unknown resolution scope '{scope}'")

    entities = aggregate_line_items(items)
    log.info(
        f"Resolved {sum(len(r) for r in rows_by_rep.values())} rep/customer rows from "
        f"{len(rows_by_rep)} reps into {len(entities)} customers (scope={scope})"
    )
    return entities
