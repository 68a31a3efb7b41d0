from __future__ import annotations

from typing import Optional

from ..models.entities import MERGE_MARKER


def normalize(name: Optional[str]) -> str:
    """Identity key for customer and sales rep names: lowercased and trimmed."""
    if name is None:
        return ""
    return str(name).strip().lower()


def strip_merge_marker(label: Optional[str]) -> str:
    if not label:
        return ""
    s = str(label).strip()
    if s.endswith(MERGE_MARKER):
        s = s[: -len(MERGE_MARKER)]
    return s.strip()


def key_name(label: Optional[str]) -> str:
    return normalize(strip_merge_marker(label))


def merged_label(merged_name: Optional[str]) -> str:
    return f"{str(merged_name or '').strip()}{MERGE_MARKER}"


def is_merged_label(label: Optional[str]) -> bool:
    return bool(label) and str(label).strip().endswith(MERGE_MARKER)


def to_proper_case(name: Optional[str]) -> str:
    if not name:
        return ""
    return " ".join(w[:1].upper() + w[1:] for w in str(name).strip().lower().split(" "))


def display_name(label: Optional[str]) -> str:
    return to_proper_case(strip_merge_marker(label))
