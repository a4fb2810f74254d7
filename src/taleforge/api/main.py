"""FastAPI application entry point for the offline store.

Main application configuration, startup lifecycle and the wiring between the
local store, operation queue, network monitor and sync coordinator.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taleforge.core.config import Settings, get_settings
from taleforge.core.logging import configure_logging
from taleforge.core.supabase import create_supabase_client
from taleforge.services.media_cache import MediaUrlCache
from taleforge.services.offline_stories import OfflineStoryService
from taleforge.services.recovery import StoryRecoveryService
from taleforge.storage.local_store import LocalStore
from taleforge.storage.operation_queue import OperationQueue, RetryPolicy
from taleforge.sync.network import NetworkMonitor
from taleforge.sync.remote import RemoteBackend, SupabaseBackend
from taleforge.sync.service import SyncOptions, SyncService

logger = logging.getLogger(__name__)


def _retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        auto_retry=settings.queue_auto_retry,
        max_retry_attempts=settings.queue_max_retry_attempts,
        base_delay_seconds=settings.queue_base_retry_delay_seconds,
        max_delay_seconds=settings.queue_max_retry_delay_seconds,
    )


def _sync_options(settings: Settings) -> SyncOptions:
    return SyncOptions(
        conflict_strategy=settings.sync_conflict_strategy,
        auto_sync_on_reconnect=settings.sync_auto_on_reconnect,
        reconnect_delay_seconds=settings.sync_reconnect_delay_seconds,
        max_batch_size=settings.sync_max_batch_size,
    )


def create_lifespan(remote: RemoteBackend | None = None):
    """Build the lifespan handler.

    Args:
        remote: Backend to sync against. Defaults to Supabase when configured;
            without either the store works offline-only and sync is disabled.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler.

        Startup:
        - Open the local store
        - Wire queue, network monitor, sync coordinator and services
        - Check for stories that never reached the server

        Shutdown:
        - Stop background checks and close the local store
        """
        settings = get_settings()
        configure_logging(settings.log_level, json_output=settings.log_json)

        logger.info("Opening local store...")
        store = await LocalStore.open(
            settings.async_local_database_url, echo=settings.local_database_echo
        )
        queue = OperationQueue(store, retry_policy=_retry_policy(settings))
        await queue.requeue_stalled()
        media_cache = MediaUrlCache(
            ttl_seconds=settings.media_cache_ttl_seconds,
            max_entries=settings.media_cache_max_entries,
        )
        network = NetworkMonitor(
            settings.effective_heartbeat_url,
            interval_seconds=settings.heartbeat_interval_seconds,
            timeout_seconds=settings.heartbeat_timeout_seconds,
        )

        supabase_client = None
        backend = remote
        if backend is None and settings.has_supabase_config():
            supabase_client = create_supabase_client(settings)
            backend = SupabaseBackend(supabase_client)

        sync = None
        if backend is not None:
            sync = SyncService(store, queue, backend, network, _sync_options(settings))
            sync.start()
        else:
            logger.warning("No remote backend configured, sync disabled")

        app.state.store = store
        app.state.queue = queue
        app.state.media_cache = media_cache
        app.state.network = network
        app.state.supabase = supabase_client
        app.state.sync = sync
        app.state.recovery = StoryRecoveryService(store, sync)
        app.state.stories = OfflineStoryService(store, queue, media_cache, sync)

        await network.start()

        offer = await app.state.recovery.check_for_unsaved()
        if offer is not None:
            logger.info(
                f"Unsaved story available for recovery: {offer.story_id}",
                extra={"story_id": offer.story_id},
            )

        yield

        # Shutdown
        logger.info("Shutting down...")
        if sync is not None:
            await sync.stop()
        await network.stop()
        media_cache.clear()
        await store.close()
        logger.info("Local store closed")

    return lifespan


def create_app(remote: RemoteBackend | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()
    is_production = settings.environment == "production"

    app = FastAPI(
        title="Tale Forge Offline API",
        description="Local store, operation queue and recovery for stories written offline",
        version=settings.app_version,
        docs_url="/api/docs" if not is_production else None,
        redoc_url="/api/redoc" if not is_production else None,
        openapi_url="/api/openapi.json" if not is_production else None,
        lifespan=create_lifespan(remote),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",  # Vite default
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from taleforge.api.routers import health, offline

    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(offline.router, prefix="/api/offline", tags=["offline"])

    from taleforge.api.exceptions import register_exception_handlers
    register_exception_handlers(app)

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "taleforge.api.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
    )
