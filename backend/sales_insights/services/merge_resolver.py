from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..models.entities import LineItem, MergeRule, RawFact
from ..utils.logger import get_logger
from .normalizer import merged_label, normalize

log = get_logger("service.merge")


def active_rules(rules: Iterable[MergeRule]) -> List[MergeRule]:
    return [r for r in rules if r.is_active and r.original_customers]


def rules_for_rep(rules: Sequence[MergeRule], sales_rep: Optional[str]) -> List[MergeRule]:
    """Rules owned by the rep; division-wide rules when the rep has none of its own."""
    rep_key = normalize(sales_rep)
    own = [r for r in active_rules(rules) if r.sales_rep and normalize(r.sales_rep) == rep_key]
    if own:
        return own
    return [r for r in active_rules(rules) if r.is_division_wide]


def find_rule_overlaps(rules: Sequence[MergeRule]) -> List[Tuple[str, str, str]]:
    """(customer, first merged name, second merged name) for every customer claimed by two active rules."""
    claimed: Dict[str, str] = {}
    overlaps: List[Tuple[str, str, str]] = []
    for rule in active_rules(rules):
        seen_in_rule: Set[str] = set()
        for name in rule.original_customers:
            key = normalize(name)
            if not key or key in seen_in_rule:
                continue
            seen_in_rule.add(key)
            if key in claimed:
                overlaps.append((name, claimed[key], rule.merged_name))
            else:
                claimed[key] = rule.merged_name
    return overlaps


def collect_customer_rows(facts: Iterable[RawFact]) -> Dict[str, Dict[str, float]]:
    """Sum facts per sales rep and customer. Names that differ only by case/spacing share one row."""
    rows: Dict[str, Dict[str, float]] = {}
    rep_names: Dict[str, str] = {}
    spellings: Dict[Tuple[str, str], str] = {}
    for f in facts:
        cust_key = normalize(f.customer)
        if not cust_key:
            continue
        rep_key = normalize(f.sales_rep)
        rep = rep_names.setdefault(rep_key, (f.sales_rep or "").strip())
        name = spellings.setdefault((rep_key, cust_key), f.customer.strip())
        bucket = rows.setdefault(rep, {})
        bucket[name] = bucket.get(name, 0.0) + float(f.value or 0.0)
    return rows


def resolve_rep(
    rows: Mapping[str, float], rules: Sequence[MergeRule], sales_rep: str = ""
) -> List[LineItem]:
    """Apply one representative's merge rules to its customer rows.

    Every input customer ends up in exactly one returned line item: either folded
    into the first rule naming it (``merged_name*``) or passed through unmerged.
    """
    by_key: Dict[str, Tuple[str, float]] = {}
    for name, value in rows.items():
        key = normalize(name)
        if not key:
            continue
        if key in by_key:
            prev_name, prev_value = by_key[key]
            by_key[key] = (prev_name, prev_value + float(value or 0.0))
        else:
            by_key[key] = (name, float(value or 0.0))

    items: List[LineItem] = []
    claimed: Set[str] = set()

    for rule in active_rules(rules):
        wanted = {normalize(n) for n in rule.original_customers}
        matched = [k for k in by_key if k in wanted and k not in claimed]
        if not matched:
            log.debug(f"Rule '{rule.merged_name}' matched no customers for rep '{sales_rep}'")
            continue
        overlapping = [k for k in by_key if k in wanted and k in claimed]
        if overlapping:
            log.warning(
                f"Rule '{rule.merged_name}' names customers already merged by an earlier rule for rep "
                f"'{sales_rep}': {[by_key[k][0] for k in overlapping]} (first match kept)"
            )
        total = sum(by_key[k][1] for k in matched)
        items.append(
            LineItem(
                name=merged_label(rule.merged_name),
                value=total,
                is_merged=True,
                original_customers=tuple(by_key[k][0] for k in matched),
                sales_rep=sales_rep,
            )
        )
        claimed.update(matched)
        log.debug(f"Merged {len(matched)} customers into '{rule.merged_name}' for rep '{sales_rep}': {total:.2f}")

    for key, (name, value) in by_key.items():
        if key in claimed:
            continue
        items.append(
            LineItem(
                name=name,
                value=value,
                is_merged=False,
                original_customers=(name,),
                sales_rep=sales_rep,
            )
        )
    return items


def resolve_all_reps(
    rows_by_rep: Mapping[str, Mapping[str, float]], rules: Sequence[MergeRule]
) -> List[LineItem]:
    items: List[LineItem] = []
    for rep, rows in rows_by_rep.items():
        rep_rules = rules_for_rep(rules, rep)
        if rep_rules:
            log.info(f"Applying {len(rep_rules)} merge rules for sales rep: {rep}")
        items.extend(resolve_rep(rows, rep_rules, rep))
    return items
