import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from claimsboard.core.dependencies import get_claims_source
from claimsboard.core.source.pipeline import ClaimsSource
from claimsboard.main import app
from tests.fakes import CLAIM_COLUMNS, FakeClient, claim_row, describe_rows, make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def claim_rows():
    return [
        claim_row("Acme Corp", "M1", 1000),
        claim_row("Acme Corp", "M2", 2500, Month_Name="Feb"),
        claim_row("Globex", "G1", 500),
    ]


@pytest.fixture
def fake_client(claim_rows):
    return FakeClient(
        {
            "DESCRIBE TABLE": describe_rows(*CLAIM_COLUMNS),
            "SELECT COUNT(*)": [{"cnt": 3}],
            "SELECT `": claim_rows,
        }
    )


@pytest.fixture
def source(settings, fake_client):
    return ClaimsSource(settings, client_factory=lambda: fake_client)


# Client with the claims source swapped for the fake one
@pytest_asyncio.fixture(scope="function")
async def client(source):
    app.dependency_overrides[get_claims_source] = lambda: source

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
