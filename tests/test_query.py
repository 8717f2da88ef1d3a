import random
import re

import pytest

from claimsboard.core.source.query import build_claims_query, parse_years
from claimsboard.core.source.resolver import ResolvedRoles, resolve_roles
from claimsboard.core.source.roles import ROLE_DICTIONARY, CanonicalRole

TABLE = "main.hmo.claims"


def quoted_tokens(sql: str):
    return [t.replace("``", "`") for t in re.findall(r"`((?:[^`]|``)+)`", sql)]


def test_wildcard_when_nothing_resolved():
    sql = build_claims_query(TABLE, resolve_roles([]))
    assert sql == f"SELECT * FROM {TABLE}"


def test_projection_uses_actual_column_names():
    resolved = resolve_roles(["Entity", "Paid.Claim"])
    sql = build_claims_query(TABLE, resolved)
    assert sql == f"SELECT `Paid.Claim`, `Entity` FROM {TABLE}"


def test_year_filter_against_resolved_column():
    resolved = ResolvedRoles(columns={CanonicalRole.POLICY_YEAR: "Year"})
    sql = build_claims_query(TABLE, resolved, years=["2023-24", "2024-25"])

    assert sql == f"SELECT `Year` FROM {TABLE} WHERE `Year` IN ('2023-24', '2024-25')"
    assert "ORDER BY" not in sql.upper()


def test_year_filter_skipped_without_year_column():
    """Configured years never produce a WHERE on a guessed column"""
    resolved = resolve_roles(["Entity", "APPROVEDAMOUNT"])
    sql = build_claims_query(TABLE, resolved, years=["2023-24"], limit=100)

    assert "WHERE" not in sql
    assert "Policy_Year" not in sql
    assert sql.endswith(" LIMIT 100")


def test_limit_appended():
    sql = build_claims_query(TABLE, resolve_roles([]), limit=500000)
    assert sql == f"SELECT * FROM {TABLE} LIMIT 500000"


def test_quoting_survives_special_characters():
    resolved = ResolvedRoles(
        columns={CanonicalRole.POLICY_YEAR: "Policy `Year`"}
    )
    sql = build_claims_query(TABLE, resolved, years=["O'Brien"])
    assert "`Policy ``Year```" in sql
    assert "'O''Brien'" in sql


def test_never_orders():
    resolved = resolve_roles([v for names in ROLE_DICTIONARY.values() for v in names])
    sql = build_claims_query(TABLE, resolved, years=["2022-23"], limit=10)
    assert "ORDER BY" not in sql.upper()


@pytest.mark.parametrize("seed", range(25))
def test_query_only_mentions_table_columns(seed):
    rng = random.Random(seed)
    variants = [v for names in ROLE_DICTIONARY.values() for v in names]
    noise = [f"col_{rng.randint(0, 999)}" for _ in range(5)]
    columns = rng.sample(variants, rng.randint(0, 30)) + noise
    rng.shuffle(columns)

    sql = build_claims_query(
        TABLE, resolve_roles(columns), years=["2023-24"], limit=rng.choice([None, 50])
    )

    assert set(quoted_tokens(sql)) <= set(columns)
    assert "ORDER BY" not in sql


def test_parse_years():
    assert parse_years("2023-24, 2024-25") == ["2023-24", "2024-25"]
    assert parse_years("2022-23,,") == ["2022-23"]
    assert parse_years("") is None
    assert parse_years(None) is None
    assert parse_years(" , ") is None
