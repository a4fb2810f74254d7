"""Remote backend adapters.

The sync coordinator talks to the hosted database through the small
RemoteBackend protocol. SupabaseBackend is the production implementation;
tests pass an in-memory fake.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from supabase import Client

logger = logging.getLogger(__name__)


class RemoteBackend(Protocol):
    """Table-like access to the remote database."""

    async def fetch(self, table: str, record_id: str) -> dict[str, Any] | None: ...

    async def insert(self, table: str, data: dict[str, Any]) -> None: ...

    async def upsert(self, table: str, data: dict[str, Any]) -> None: ...

    async def update(self, table: str, record_id: str, data: dict[str, Any]) -> None: ...

    async def delete(self, table: str, record_id: str) -> None: ...


class SupabaseBackend:
    """RemoteBackend over a supabase-py client.

    The supabase client is synchronous, so each request runs in a worker
    thread to keep the event loop free.
    """

    def __init__(self, client: Client):
        self.client = client

    async def fetch(self, table: str, record_id: str) -> dict[str, Any] | None:
        response = await asyncio.to_thread(
            lambda: self.client.table(table).select("*").eq("id", record_id).limit(1).execute()
        )
        rows = response.data or []
        return rows[0] if rows else None

    async def insert(self, table: str, data: dict[str, Any]) -> None:
        await asyncio.to_thread(lambda: self.client.table(table).insert(data).execute())

    async def upsert(self, table: str, data: dict[str, Any]) -> None:
        await asyncio.to_thread(
            lambda: self.client.table(table).upsert(data, on_conflict="id").execute()
        )

    async def update(self, table: str, record_id: str, data: dict[str, Any]) -> None:
        await asyncio.to_thread(
            lambda: self.client.table(table).update(data).eq("id", record_id).execute()
        )

    async def delete(self, table: str, record_id: str) -> None:
        await asyncio.to_thread(
            lambda: self.client.table(table).delete().eq("id", record_id).execute()
        )
