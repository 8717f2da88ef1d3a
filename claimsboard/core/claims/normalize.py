"""
NORMALIZE MODULE - give raw claim rows consistent keys

Raw rows arrive keyed by whatever the table or spreadsheet calls a column:
"APPROVEDAMOUNT", "Paid.Claim", "approved_amount", "Client.Name(Updated)".
Aggregation wants one key per meaning, so every raw key is looked up in the
role dictionary and renamed to its canonical role.

Data Flow:
    raw row → normalize_key(raw key) → canonical role → normalized row

Why this matters:
    - Old and new schemas name the same thing differently
    - A table may carry both "Entity" and "Client.ID"; the higher priority
      name must win no matter which column comes first in the row
"""

import re
from typing import Any, Dict, Tuple

from claimsboard.core.source.resolver import normalize_key
from claimsboard.core.source.roles import ROLE_DICTIONARY


def _build_key_map() -> Dict[str, Tuple[str, int]]:
    """normalized key -> (canonical role, priority); first declared role wins."""
    key_map: Dict[str, Tuple[str, int]] = {}
    for role, variants in ROLE_DICTIONARY.items():
        for priority, variant in enumerate(variants):
            key_map.setdefault(normalize_key(variant), (role.value, priority))
    return key_map


KEY_MAP = _build_key_map()


def snake_case(raw_key: str) -> str:
    """
    Fallback key for columns no role knows about.

    Example:
        "Member Reference.Date" -> "member_reference_date"
    """
    key = str(raw_key).strip().lower()
    key = re.sub(r"[^a-z0-9]+", "_", key)
    return key.strip("_")


def normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rename every key of a raw claim row to its canonical role.

    Args:
        row: Raw row from Databricks or a spreadsheet

    Returns:
        New dict keyed by canonical role (unknown columns in snake_case)

    Example:
        {"Client.Name": "Acme", "Paid.Claim": "1,200"}
        -> {"entity": "Acme", "approved_amount": "1,200"}
    """
    normalized: Dict[str, Any] = {}
    priorities: Dict[str, int] = {}

    for raw_key, value in row.items():
        mapped = KEY_MAP.get(normalize_key(raw_key))
        if mapped is None:
            normalized.setdefault(snake_case(raw_key), value)
            continue

        canonical, priority = mapped
        if canonical in priorities and priorities[canonical] <= priority:
            continue
        normalized[canonical] = value
        priorities[canonical] = priority

    return normalized
