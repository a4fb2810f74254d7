"""Supabase client management.

The remote backend the sync coordinator pushes to. Clients are created on
demand from settings and owned by whoever constructs them (the application
lifespan, or a test).
"""

from __future__ import annotations

import asyncio
import logging

from supabase import Client, create_client

from taleforge.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_supabase_client(settings: Settings | None = None) -> Client:
    """Create a Supabase client with the anon key.

    The anon client respects RLS policies and is what the sync coordinator
    uses on behalf of a signed-in user.

    Args:
        settings: Settings to read credentials from. Defaults to cached settings.

    Returns:
        Configured Supabase Client.

    Raises:
        RuntimeError: If the required credentials are not configured.
    """
    settings = settings or get_settings()

    if not settings.has_supabase_config():
        raise RuntimeError(
            "Supabase not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY."
        )
    client = create_client(settings.supabase_url, settings.supabase_anon_key)
    logger.info("Supabase client initialized with anon key")
    return client


async def verify_supabase_jwt(client: Client, token: str) -> dict | None:
    """Verify a Supabase JWT and extract user info.

    Args:
        client: Supabase client to validate against.
        token: The JWT access token from Supabase Auth.

    Returns:
        User data dict if valid, None if invalid.
    """
    try:
        response = await asyncio.to_thread(client.auth.get_user, token)
        if response and response.user:
            return {
                "id": response.user.id,
                "email": response.user.email,
                "role": response.user.role,
            }
    except Exception as e:
        logger.warning(f"JWT verification failed: {e}")
    return None
