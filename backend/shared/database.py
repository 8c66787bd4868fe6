"""
Supabase client factory for the ledger store.

The ledger always talks to Supabase with the service role: row ownership is
enforced by the ledger services, not by RLS. One client is shared by every
repository through SupabaseLedgerStore.
"""

from typing import Optional
from supabase import create_client, Client

from .config import get_settings
from .exceptions import ConfigurationError

_service_client: Optional[Client] = None


def is_supabase_configured() -> bool:
    """True when both SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are set."""
    settings = get_settings()
    return bool(settings.supabase_url and settings.supabase_service_role_key)


def get_supabase_client() -> Client:
    """
    Return the cached service-role client, creating it on first use.

    Raises:
        ConfigurationError: if the Supabase credentials are not set
    """
    global _service_client

    if _service_client is None:
        if not is_supabase_configured():
            raise ConfigurationError(
                "Supabase ledger store is not configured. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY.",
                settings=["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"],
            )
        settings = get_settings()
        _service_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )

    return _service_client


def reset_client_cache() -> None:
    """Drop the cached client so the next call reads settings again."""
    global _service_client
    _service_client = None
