"""Shared test fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient

from factories import PAYMENTS, WEBHOOK_SECRET, FakeClock
from prophet.config import Settings
from prophet.settlement.appeals import AppealService
from prophet.settlement.engine import SettlementEngine
from prophet.storage.memory import InMemoryLedgerStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def engine(store: InMemoryLedgerStore, clock: FakeClock) -> SettlementEngine:
    return SettlementEngine(store, clock=clock, payments=PAYMENTS)


@pytest.fixture
def appeals(store: InMemoryLedgerStore, clock: FakeClock) -> AppealService:
    return AppealService(store, clock=clock)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        data_dir=tmp_path,
        database_url=f"sqlite+aiosqlite:///{tmp_path}/test.db",
        logfire_token="",
        payments_webhook_secret=WEBHOOK_SECRET,
        payments=PAYMENTS,
        _env_file=None,
    )


@pytest.fixture
async def client(settings: Settings, engine: SettlementEngine, appeals: AppealService):
    """Async HTTP client against an app wired to the in-memory store."""
    from prophet.api.server import create_app

    app = create_app(settings=settings, engine=engine, appeals=appeals)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
