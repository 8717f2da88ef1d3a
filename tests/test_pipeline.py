import pytest

from claimsboard.core.errors import (
    TABLE_HINT,
    ConfigurationError,
    ConnectivityFailure,
    DependencyUnavailable,
    EmptyResult,
    LoadAdvisory,
)
from claimsboard.core.source.pipeline import ClaimsAggregator, ClaimsSource
from tests.fakes import CLAIM_COLUMNS, FakeClient, describe_rows, make_settings


def source_for(client: FakeClient, **overrides) -> ClaimsSource:
    return ClaimsSource(make_settings(**overrides), client_factory=lambda: client)


def test_configuration_flags():
    assert source_for(FakeClient()).is_configured()
    assert source_for(FakeClient()).is_table_set()
    assert not source_for(FakeClient(), DATABRICKS_TOKEN=None).is_configured()
    assert not source_for(FakeClient(), DATABRICKS_HTTP_PATH="").is_configured()
    assert not source_for(FakeClient(), DATABRICKS_TABLE=None).is_table_set()


@pytest.mark.asyncio
async def test_load_and_aggregate(source, fake_client, claim_rows):
    result = await source.load_and_aggregate()

    assert [c["name"] for c in result.clients] == ["Acme Corp", "Globex"]
    assert result.claims_data == claim_rows
    assert result.meta.source == "databricks"
    assert result.meta.host == "adb-123.azuredatabricks.net"
    assert result.meta.table == "main.hmo.claims"
    assert result.meta.total_clients == 2
    assert result.meta.total_claims == 3
    assert result.meta.data_format == "hmo-claims-level"
    assert result.meta.advisories == []
    assert result.meta.matched_roles["entity"] == "Entity"
    assert result.meta.logs

    # Released exactly once
    assert fake_client.session_closes == 1
    assert fake_client.client_closes == 1


@pytest.mark.asyncio
async def test_query_uses_introspected_columns(fake_client):
    source = source_for(fake_client, DATABRICKS_POLICY_YEARS="2023-24, 2024-25")
    await source.fetch_raw_rows()

    describe, query = fake_client.statements
    assert describe == "DESCRIBE TABLE main.hmo.claims"
    assert "`Entity`" in query and "`Paid.Claim`" in query
    assert "WHERE `Year` IN ('2023-24', '2024-25')" in query
    assert query.endswith("LIMIT 500000")
    assert "ORDER BY" not in query


@pytest.mark.asyncio
async def test_credentials_are_passed_to_client(source, fake_client):
    await source.fetch_raw_rows()
    assert fake_client.credentials.host == "adb-123.azuredatabricks.net"
    assert fake_client.credentials.path == "/sql/1.0/warehouses/abc"
    assert fake_client.credentials.token == "dapi-test-token"


@pytest.mark.asyncio
async def test_not_configured_fails_before_connecting():
    calls = []

    def factory():
        calls.append(1)
        return FakeClient()

    source = ClaimsSource(make_settings(DATABRICKS_TOKEN=None), client_factory=factory)
    with pytest.raises(ConfigurationError):
        await source.fetch_raw_rows()
    assert calls == []


@pytest.mark.asyncio
async def test_zero_rows_is_empty_result():
    client = FakeClient({"DESCRIBE TABLE": describe_rows(*CLAIM_COLUMNS), "SELECT `": []})
    source = source_for(client)

    with pytest.raises(EmptyResult):
        await source.load_and_aggregate()
    assert client.session_closes == 1
    assert client.client_closes == 1


@pytest.mark.asyncio
async def test_raw_fetch_of_zero_rows_is_empty_result():
    client = FakeClient({"DESCRIBE TABLE": describe_rows(*CLAIM_COLUMNS), "SELECT `": []})
    source = source_for(client)

    with pytest.raises(EmptyResult, match="0 rows"):
        await source.fetch_raw_rows()
    assert client.session_closes == 1
    assert client.client_closes == 1


@pytest.mark.asyncio
async def test_query_failure_still_releases():
    client = FakeClient(
        {
            "DESCRIBE TABLE": describe_rows(*CLAIM_COLUMNS),
            "SELECT `": RuntimeError("[UNRESOLVED_COLUMN] Year"),
        }
    )
    source = source_for(client)

    with pytest.raises(ConnectivityFailure, match="UNRESOLVED_COLUMN"):
        await source.load_and_aggregate()
    assert client.session_closes == 1
    assert client.client_closes == 1


@pytest.mark.asyncio
async def test_connect_failure_is_connectivity_failure():
    client = FakeClient(connect_error=OSError("Name or service not known"))
    source = source_for(client)

    with pytest.raises(ConnectivityFailure, match="Name or service not known"):
        await source.fetch_raw_rows()
    assert client.session_closes == 0
    assert client.client_closes == 1


@pytest.mark.asyncio
async def test_missing_connector_propagates():
    def factory():
        raise DependencyUnavailable("databricks-sql-connector not installed")

    source = ClaimsSource(make_settings(), client_factory=factory)
    with pytest.raises(DependencyUnavailable):
        await source.load_and_aggregate()


@pytest.mark.asyncio
async def test_table_discovered_when_not_configured(claim_rows):
    client = FakeClient(
        {
            "SHOW TABLES": [
                {"database": "hmo", "tableName": "members"},
                {"database": "hmo", "tableName": "claims_2024"},
            ],
            "DESCRIBE TABLE": describe_rows(*CLAIM_COLUMNS),
            "SELECT `": claim_rows,
        }
    )
    source = source_for(client, DATABRICKS_TABLE=None)
    result = await source.load_and_aggregate()

    assert client.statements[1] == "DESCRIBE TABLE hmo.claims_2024"
    assert result.meta.table == "auto-discovered"
    assert result.meta.resolved_table == "hmo.claims_2024"


@pytest.mark.asyncio
async def test_no_table_found_is_configuration_error():
    client = FakeClient({"SHOW TABLES": []})
    source = source_for(client, DATABRICKS_TABLE=None)

    with pytest.raises(ConfigurationError, match="No table found") as exc_info:
        await source.fetch_raw_rows()
    assert exc_info.value.hint == TABLE_HINT
    assert client.session_closes == 1
    assert client.client_closes == 1


@pytest.mark.asyncio
async def test_failed_introspection_degrades_to_wildcard(claim_rows):
    client = FakeClient(
        {
            "DESCRIBE TABLE": RuntimeError("denied"),
            "SELECT * FROM main.hmo.claims LIMIT 1": RuntimeError("denied"),
            "SELECT * FROM main.hmo.claims": claim_rows,
        }
    )
    source = source_for(client, DATABRICKS_POLICY_YEARS="2023-24")
    result = await source.load_and_aggregate()

    assert client.statements[-1] == "SELECT * FROM main.hmo.claims LIMIT 500000"
    assert LoadAdvisory.INTROSPECTION_DEGRADED in result.meta.advisories
    assert result.meta.matched_roles == {}


@pytest.mark.asyncio
async def test_odd_shaped_data_only_warns():
    rows = [{"Entity": "Acme", "Headcount": 10}, {"Entity": "Globex", "Headcount": 4}]
    client = FakeClient(
        {"DESCRIBE TABLE": describe_rows("Entity", "Headcount"), "SELECT `": rows}
    )
    result = await source_for(client).load_and_aggregate()

    assert LoadAdvisory.SHAPE_MISMATCH in result.meta.advisories
    assert result.meta.total_clients == 2


@pytest.mark.asyncio
async def test_custom_aggregator_receives_every_row(claim_rows, fake_client):
    received = []

    def aggregate(rows):
        received.extend(rows)
        return [{"name": "everyone"}]

    source = ClaimsSource(
        make_settings(),
        client_factory=lambda: fake_client,
        aggregator=ClaimsAggregator(aggregate_claims_to_clients=aggregate),
    )
    result = await source.load_and_aggregate()

    assert received == claim_rows
    assert result.clients == [{"name": "everyone"}]
    assert result.meta.total_clients == 1


@pytest.mark.asyncio
async def test_each_load_gets_its_own_client(claim_rows):
    clients = []

    def factory():
        client = FakeClient(
            {"DESCRIBE TABLE": describe_rows(*CLAIM_COLUMNS), "SELECT `": claim_rows}
        )
        clients.append(client)
        return client

    source = ClaimsSource(make_settings(), client_factory=factory)
    await source.fetch_raw_rows()
    await source.fetch_raw_rows()

    assert len(clients) == 2
    assert all(c.client_closes == 1 and c.session_closes == 1 for c in clients)
