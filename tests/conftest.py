import logging
from typing import Any

import httpx
import pytest

from taleforge.core.config import get_settings
from taleforge.storage.local_store import LocalStore
from taleforge.storage.operation_queue import OperationQueue


class FakeRemote:
    """In-memory stand-in for the Supabase tables."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.fail_with: Exception | None = None

    def rows(self, table: str) -> dict[str, dict[str, Any]]:
        return self.tables.setdefault(table, {})

    def _record(self, method: str, table: str, record_id: str) -> None:
        self.calls.append((method, table, record_id))
        if self.fail_with is not None:
            raise self.fail_with

    async def fetch(self, table: str, record_id: str) -> dict[str, Any] | None:
        self._record("fetch", table, record_id)
        row = self.rows(table).get(record_id)
        return dict(row) if row is not None else None

    async def insert(self, table: str, data: dict[str, Any]) -> None:
        self._record("insert", table, data["id"])
        if data["id"] in self.rows(table):
            raise ValueError(f"duplicate key value violates unique constraint on {table}")
        self.rows(table)[data["id"]] = dict(data)

    async def upsert(self, table: str, data: dict[str, Any]) -> None:
        self._record("upsert", table, data["id"])
        self.rows(table)[data["id"]] = dict(data)

    async def update(self, table: str, record_id: str, data: dict[str, Any]) -> None:
        self._record("update", table, record_id)
        if record_id in self.rows(table):
            self.rows(table)[record_id] = {**self.rows(table)[record_id], **data}

    async def delete(self, table: str, record_id: str) -> None:
        self._record("delete", table, record_id)
        self.rows(table).pop(record_id, None)


@pytest.fixture()
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'offline.db'}"


@pytest.fixture()
async def store(database_url):
    local_store = await LocalStore.open(database_url)
    yield local_store
    await local_store.close()


@pytest.fixture()
def queue(store) -> OperationQueue:
    return OperationQueue(store)


@pytest.fixture()
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture()
def app_settings(database_url, monkeypatch):
    # The lifespan reconfigures root logging; put pytest's handlers back afterwards
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level

    monkeypatch.setenv("LOCAL_DATABASE_URL", database_url)
    monkeypatch.setenv("SUPABASE_URL", "")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "")
    monkeypatch.setenv("HEARTBEAT_URL", "")
    monkeypatch.setenv("HEARTBEAT_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("SYNC_AUTO_ON_RECONNECT", "false")
    monkeypatch.setenv("LOG_JSON", "false")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture()
async def app(app_settings, remote):
    from taleforge.api.main import create_app

    application = create_app(remote=remote)
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture()
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
