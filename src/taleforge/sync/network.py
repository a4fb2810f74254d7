"""Network status monitoring.

Tracks whether the remote backend is reachable and tells registered handlers
when the status changes, in particular when the device comes back online.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

import httpx

logger = logging.getLogger(__name__)


class NetworkStatus(str, Enum):
    """Connectivity as last observed."""

    ONLINE = "online"
    OFFLINE = "offline"
    CHECKING = "checking"


class NetworkEventType(str, Enum):
    """Events delivered to network handlers."""

    STATUS_CHANGE = "status_change"
    RECONNECTED = "reconnected"


NetworkEventHandler = Callable[[NetworkStatus, NetworkEventType], None]


class NetworkMonitor:
    """Heartbeat-based connectivity monitor.

    Without a heartbeat URL the monitor reports online after the first
    check; set_status() lets a caller feed in platform connectivity events.
    """

    def __init__(
        self,
        heartbeat_url: str = "",
        *,
        interval_seconds: float = 30.0,
        timeout_seconds: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.heartbeat_url = heartbeat_url
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.status = NetworkStatus.CHECKING
        self._handlers: list[NetworkEventHandler] = []
        self._client = http_client
        self._owns_client = http_client is None
        self._task: asyncio.Task | None = None

    def register_handler(self, handler: NetworkEventHandler) -> None:
        self._handlers.append(handler)

    def unregister_handler(self, handler: NetworkEventHandler) -> None:
        self._handlers = [h for h in self._handlers if h is not handler]

    def is_online(self) -> bool:
        return self.status == NetworkStatus.ONLINE

    def set_status(self, status: NetworkStatus) -> None:
        """Record an externally observed status (e.g. an OS offline event)."""
        previous = self.status
        self.status = status
        if previous == status:
            return

        logger.info(f"Network status changed: {previous.value} -> {status.value}")
        self._notify(status, NetworkEventType.STATUS_CHANGE)
        if previous == NetworkStatus.OFFLINE and status == NetworkStatus.ONLINE:
            self._notify(status, NetworkEventType.RECONNECTED)

    def _notify(self, status: NetworkStatus, event_type: NetworkEventType) -> None:
        for handler in list(self._handlers):
            try:
                handler(status, event_type)
            except Exception:
                logger.exception("Error in network event handler")

    async def check(self) -> NetworkStatus:
        """Run one heartbeat and update the status.

        Any HTTP response below 500 counts as reachable; transport errors and
        timeouts count as offline.
        """
        if not self.heartbeat_url:
            self.set_status(NetworkStatus.ONLINE)
            return self.status

        if self._client is None:
            self._client = httpx.AsyncClient()

        try:
            response = await self._client.get(
                self.heartbeat_url,
                timeout=self.timeout_seconds,
                headers={"Cache-Control": "no-store"},
            )
            reachable = response.status_code < 500
        except httpx.HTTPError as exc:
            logger.debug(f"Heartbeat failed: {exc}")
            reachable = False

        self.set_status(NetworkStatus.ONLINE if reachable else NetworkStatus.OFFLINE)
        return self.status

    async def start(self) -> None:
        """Check once, then keep checking every interval in the background."""
        if self._task is not None:
            return
        await self.check()
        if self.interval_seconds > 0:
            self._task = asyncio.create_task(self._heartbeat_loop())
            logger.info(f"Heartbeat checks started (interval: {self.interval_seconds}s)")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.check()

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Network monitoring stopped")
