"""Supabase client configuration.

Two clients are used: the public (anon key) client for reads and anonymous
counter updates, and the server (service role key) client for uploads and
row inserts that bypass row-level security. Either is ``None`` when its keys
are not configured.
"""

import logging
from typing import Optional

from supabase import Client, create_client

from memehub.core.config import settings

logger = logging.getLogger(__name__)

_public_client: Optional[Client] = None
_server_client: Optional[Client] = None


def get_supabase_client() -> Optional[Client]:
    """Get the anon-key Supabase client, creating it on first use."""
    global _public_client
    if _public_client is None and settings.SUPABASE_URL and settings.SUPABASE_ANON_KEY:
        _public_client = create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
        logger.info("Supabase public client initialized")
    return _public_client


def get_supabase_server_client() -> Optional[Client]:
    """Get the service-role Supabase client, creating it on first use."""
    global _server_client
    if _server_client is None and settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY:
        _server_client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
        logger.info("Supabase server client initialized")
    return _server_client
