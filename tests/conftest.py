from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="keypool-tests-"))
TEST_DB_PATH = TEST_DB_DIR / "keypool.db"

TEST_API_KEYS = ("AIzaTestKeyAlpha000001", "AIzaTestKeyBravo000002")
TEST_ACCESS_TOKEN = "client-access-token"

os.environ["KEYPOOL_DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["KEYPOOL_STORE_BACKEND"] = "memory"
os.environ["KEYPOOL_API_KEYS"] = ",".join(TEST_API_KEYS)
os.environ["KEYPOOL_ACCESS_TOKENS"] = TEST_ACCESS_TOKEN
os.environ["KEYPOOL_UPSTREAM_BASE_URL"] = "https://example.invalid"
os.environ["KEYPOOL_VERIFY_DELAY_SECONDS"] = "0"
os.environ["KEYPOOL_STORE_PURGE_INTERVAL_SECONDS"] = "0"

from keypool.core.config.settings import get_settings  # noqa: E402
from keypool.main import create_app  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 1_750_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def app_instance():
    return create_app()


@pytest_asyncio.fixture
async def async_client(app_instance):
    async with app_instance.router.lifespan_context(app_instance):
        transport = ASGITransport(app=app_instance)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
