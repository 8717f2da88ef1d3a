import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from claimsboard.core.source.roles import ROLE_DICTIONARY, CanonicalRole


# -----------------------------------------------------------------------------
# RESOLVER MODULE
# Purpose: map the columns a table actually has onto canonical roles.
# A role that matches nothing is simply absent; nothing here is required.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

WILDCARD = "*"

_NON_KEY_CHARS = re.compile(r"[\W_]+")


def normalize_key(name: str) -> str:
    """
    Fold a column name to its comparison key.

    Lower-cases and drops whitespace, punctuation, dots, underscores and
    hyphens, so these all compare equal:

        "Claim.Type-1" -> "claimtype1"
        "Claim_Type_1" -> "claimtype1"
        "claim type 1" -> "claimtype1"
    """
    return _NON_KEY_CHARS.sub("", str(name).lower())


@dataclass(frozen=True)
class ResolvedRoles:
    """Role -> actual column map for one table, built fresh on every load."""

    columns: Dict[CanonicalRole, str] = field(default_factory=dict)
    known: int = 0

    @property
    def matched(self) -> int:
        return len(self.columns)

    @property
    def projection(self) -> List[str]:
        """Distinct actual columns referenced by any resolved role."""
        seen: List[str] = []
        for column in self.columns.values():
            if column not in seen:
                seen.append(column)
        return seen

    def get(self, role: CanonicalRole) -> Optional[str]:
        return self.columns.get(role)


def index_columns(actual_columns: Iterable[str]) -> Dict[str, str]:
    """Build normalized key -> actual column name; first spelling wins."""
    index: Dict[str, str] = {}
    for column in actual_columns:
        if not column:
            continue
        index.setdefault(normalize_key(column), column)
    return index


def resolve_roles(
    actual_columns: Iterable[str],
    dictionary: Mapping[CanonicalRole, Tuple[str, ...]] = ROLE_DICTIONARY,
) -> ResolvedRoles:
    """
    Match actual columns against the role dictionary.

    For every role, variants are tried in priority order and the first one
    present in the table wins. Roles are resolved independently, so one
    physical column may fill more than one role (e.g. "Company" as entity).

    Args:
        actual_columns: Column names present in the table (may be empty)
        dictionary: Role -> ordered variant names

    Returns:
        ResolvedRoles; empty when nothing matched

    Example:
        resolve_roles(["Entity", "Paid.Claim", "Year"]).columns
        -> {ENTITY: "Entity", APPROVED_AMOUNT: "Paid.Claim", POLICY_YEAR: "Year"}
    """
    index = index_columns(actual_columns)
    resolved: Dict[CanonicalRole, str] = {}

    for role, variants in dictionary.items():
        for variant in variants:
            found = index.get(normalize_key(variant))
            if found:
                resolved[role] = found
                break

    result = ResolvedRoles(columns=resolved, known=len(dictionary))

    if not resolved:
        logger.warning("[databricks] No known columns matched, using SELECT *")
        return result

    logger.info(
        f"[databricks] Matched {result.matched}/{result.known} known columns"
    )
    logger.info(
        f'[databricks] Resolved: entity="{resolved.get(CanonicalRole.ENTITY, "?")}", '
        f'year="{resolved.get(CanonicalRole.POLICY_YEAR, "?")}", '
        f'approved="{resolved.get(CanonicalRole.APPROVED_AMOUNT, "?")}"'
    )
    return result
