"""FastAPI dependencies for dependency injection.

The offline services are created once in the application lifespan and live
on app.state; these dependencies hand them to endpoints.
"""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from taleforge.api.exceptions import ServiceUnavailableError, UnauthorizedError
from taleforge.core.supabase import verify_supabase_jwt
from taleforge.services.offline_stories import OfflineStoryService
from taleforge.services.recovery import StoryRecoveryService
from taleforge.storage.local_store import LocalStore
from taleforge.storage.operation_queue import OperationQueue
from taleforge.sync.network import NetworkMonitor
from taleforge.sync.service import SyncService

# Security scheme
security = HTTPBearer(auto_error=False)


def get_store(request: Request) -> LocalStore:
    return request.app.state.store


def get_queue(request: Request) -> OperationQueue:
    return request.app.state.queue


def get_network(request: Request) -> NetworkMonitor:
    return request.app.state.network


def get_recovery(request: Request) -> StoryRecoveryService:
    return request.app.state.recovery


def get_stories(request: Request) -> OfflineStoryService:
    return request.app.state.stories


def get_sync(request: Request) -> SyncService:
    """The sync coordinator.

    Raises:
        ServiceUnavailableError: If no remote backend is configured
    """
    sync = request.app.state.sync
    if sync is None:
        raise ServiceUnavailableError("Sync is not configured")
    return sync


async def get_current_user_id_optional(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str | None:
    """User id from a Supabase bearer token, None for anonymous requests.

    Raises:
        UnauthorizedError: If a token is sent but cannot be verified
    """
    if credentials is None:
        return None

    client = request.app.state.supabase
    if client is None:
        raise UnauthorizedError("Authentication is not configured")

    user = await verify_supabase_jwt(client, credentials.credentials)
    if user is None:
        raise UnauthorizedError("Invalid or expired token")
    return user["id"]


Store = Annotated[LocalStore, Depends(get_store)]
Queue = Annotated[OperationQueue, Depends(get_queue)]
Network = Annotated[NetworkMonitor, Depends(get_network)]
Recovery = Annotated[StoryRecoveryService, Depends(get_recovery)]
Stories = Annotated[OfflineStoryService, Depends(get_stories)]
Sync = Annotated[SyncService, Depends(get_sync)]
OptionalUserId = Annotated[str | None, Depends(get_current_user_id_optional)]
