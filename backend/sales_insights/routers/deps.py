from __future__ import annotations

from ..db import SessionLocal
from ..services.fact_source import SqlFactSource
from ..services.rule_store import SqlMergeRuleStore, SqlRepGroupStore


def get_fact_source() -> SqlFactSource:
    return SqlFactSource(SessionLocal)


def get_rule_store() -> SqlMergeRuleStore:
    return SqlMergeRuleStore(SessionLocal)


def get_group_store() -> SqlRepGroupStore:
    return SqlRepGroupStore(SessionLocal)
