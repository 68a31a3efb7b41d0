from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from ..db import CustomerMergeRule, SalesRepGroup, SessionLocal
from ..models.entities import MergeRule, RepGroup
from ..utils.logger import get_logger
from .merge_resolver import find_rule_overlaps
from .normalizer import normalize

log = get_logger("service.rules")


class MergeRuleStore(Protocol):
    def get_rules(self, division: str, sales_rep: Optional[str] = None) -> List[MergeRule]:
        ...

    def get_all_rules_for_division(self, division: str) -> List[MergeRule]:
        ...


class RepGroupStore(Protocol):
    def get_groups(self, division: str) -> List[RepGroup]:
        ...


def _division(division: str) -> str:
    code = (division or "").strip().upper()
    if not code:
        raise ValueError("division is required")
    return code


def _rep(sales_rep: Optional[str]) -> str:
    return (sales_rep or "").strip()


def clean_rule(
    division: str,
    merged_name: str,
    original_customers: Iterable[str],
    sales_rep: Optional[str] = None,
    is_active: bool = True,
) -> MergeRule:
    """Validate a rule coming from the outside; blank names and empty customer lists are rejected."""
    name = (merged_name or "").strip().rstrip("*").strip()
    if not name:
        raise ValueError("mergedName must not be empty")
    originals: List[str] = []
    seen = set()
    for c in original_customers or []:
        key = normalize(c)
        if key and key not in seen:
            seen.add(key)
            originals.append(str(c).strip())
    if not originals:
        raise ValueError(f"Merge rule '{name}' must name at least one original customer")
    return MergeRule(
        division=_division(division),
        merged_name=name,
        original_customers=tuple(originals),
        sales_rep=_rep(sales_rep) or None,
        is_active=bool(is_active),
    )


def ensure_no_overlaps(rules: Sequence[MergeRule]) -> None:
    overlaps = find_rule_overlaps(rules)
    if overlaps:
        details = "; ".join(f"'{c}' in '{a}' and '{b}'" for c, a, b in overlaps)
        raise ValueError(f"A customer may belong to only one merge rule: {details}")


def _to_rule(row: CustomerMergeRule) -> MergeRule:
    return MergeRule(
        division=row.division,
        merged_name=row.merged_customer_name,
        original_customers=tuple(row.original_customers or ()),
        sales_rep=row.sales_rep or None,
        is_active=bool(row.is_active),
    )


class SqlMergeRuleStore:
    """Merge rules per (division, sales rep); an empty sales rep stores a division-wide rule."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def _query(self, db: Session, division: str, sales_rep: Optional[str]):
        return (
            db.query(CustomerMergeRule)
            .filter(CustomerMergeRule.division == _division(division))
            .filter(CustomerMergeRule.sales_rep == _rep(sales_rep))
        )

    def get_rules(self, division: str, sales_rep: Optional[str] = None) -> List[MergeRule]:
        with self._session_factory() as db:
            rows = (
                self._query(db, division, sales_rep)
                .filter(CustomerMergeRule.is_active.is_(True))
                .order_by(CustomerMergeRule.id)
                .all()
            )
            return [_to_rule(r) for r in rows]

    def get_all_rules_for_division(self, division: str) -> List[MergeRule]:
        with self._session_factory() as db:
            rows = (
                db.query(CustomerMergeRule)
                .filter(CustomerMergeRule.division == _division(division))
                .filter(CustomerMergeRule.is_active.is_(True))
                .order_by(CustomerMergeRule.sales_rep, CustomerMergeRule.id)
                .all()
            )
            return [_to_rule(r) for r in rows]

    def add_rule(self, rule: MergeRule) -> MergeRule:
        """Insert or replace the rule with the same merged name for that rep."""
        existing = [
            r for r in self.get_rules(rule.division, rule.sales_rep)
            if normalize(r.merged_name) != normalize(rule.merged_name)
        ]
        ensure_no_overlaps(existing + [rule])
        with self._session_factory() as db:
            row = (
                self._query(db, rule.division, rule.sales_rep)
                .filter(CustomerMergeRule.merged_customer_name == rule.merged_name)
                .one_or_none()
            )
            if row is None:
                row = CustomerMergeRule(
                    division=rule.division,
                    sales_rep=_rep(rule.sales_rep),
                    merged_customer_name=rule.merged_name,
                )
                db.add(row)
            row.original_customers = list(rule.original_customers)
            row.is_active = rule.is_active
            db.commit()
        log.info(f"Saved merge rule '{rule.merged_name}' for {rule.division}/{rule.sales_rep or '*'}")
        return rule

    def save_rules(self, division: str, sales_rep: Optional[str], rules: Sequence[MergeRule]) -> List[MergeRule]:
        """Replace every rule of the rep with ``rules`` in one transaction."""
        ensure_no_overlaps(rules)
        by_name: Dict[str, MergeRule] = {}
        for r in rules:
            by_name[normalize(r.merged_name)] = r
        with self._session_factory() as db:
            try:
                self._query(db, division, sales_rep).delete(synchronize_session=False)
                for r in by_name.values():
                    db.add(
                        CustomerMergeRule(
                            division=_division(division),
                            sales_rep=_rep(sales_rep),
                            merged_customer_name=r.merged_name,
                            original_customers=list(r.original_customers),
                            is_active=r.is_active,
                        )
                    )
                db.commit()
            except Exception:
                db.rollback()
                raise
        log.info(f"Replaced merge rules for {_division(division)}/{_rep(sales_rep) or '*'}: {len(by_name)} rules")
        return list(by_name.values())

    def delete_rule(self, division: str, sales_rep: Optional[str], merged_name: str) -> int:
        with self._session_factory() as db:
            deleted = (
                self._query(db, division, sales_rep)
                .filter(CustomerMergeRule.merged_customer_name == (merged_name or "").strip().rstrip("*").strip())
                .delete(synchronize_session=False)
            )
            db.commit()
        log.info(f"Deleted {deleted} merge rule(s) '{merged_name}' for {_division(division)}/{_rep(sales_rep) or '*'}")
        return deleted

    def has_rules(self, division: str, sales_rep: Optional[str] = None) -> bool:
        with self._session_factory() as db:
            return (
                self._query(db, division, sales_rep).filter(CustomerMergeRule.is_active.is_(True)).count() > 0
            )

    def reset_all(self) -> int:
        with self._session_factory() as db:
            deleted = db.query(CustomerMergeRule).delete(synchronize_session=False)
            db.commit()
        log.warning(f"All merge rules have been reset ({deleted} deleted)")
        return deleted


class SqlRepGroupStore:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def get_groups(self, division: str) -> List[RepGroup]:
        with self._session_factory() as db:
            rows = (
                db.query(SalesRepGroup)
                .filter(SalesRepGroup.division == _division(division))
                .order_by(SalesRepGroup.group_name)
                .all()
            )
            return [RepGroup(group_name=r.group_name, members=tuple(r.members or ())) for r in rows]

    def save_group(self, division: str, group_name: str, members: Iterable[str]) -> RepGroup:
        name = (group_name or "").strip()
        if not name:
            raise ValueError("groupName must not be empty")
        cleaned: List[str] = []
        for m in members or []:
            if normalize(m) and normalize(m) not in {normalize(x) for x in cleaned}:
                cleaned.append(str(m).strip())
        if not cleaned:
            raise ValueError(f"Group '{name}' must have at least one member")
        with self._session_factory() as db:
            row = (
                db.query(SalesRepGroup)
                .filter(SalesRepGroup.division == _division(division))
                .filter(SalesRepGroup.group_name == name)
                .one_or_none()
            )
            if row is None:
                row = SalesRepGroup(division=_division(division), group_name=name)
                db.add(row)
            row.members = cleaned
            db.commit()
        log.info(f"Saved sales rep group '{name}' ({len(cleaned)} members) for {_division(division)}")
        return RepGroup(group_name=name, members=tuple(cleaned))

    def delete_group(self, division: str, group_name: str) -> int:
        with self._session_factory() as db:
            deleted = (
                db.query(SalesRepGroup)
                .filter(SalesRepGroup.division == _division(division))
                .filter(SalesRepGroup.group_name == (group_name or "").strip())
                .delete(synchronize_session=False)
            )
            db.commit()
        return deleted
