"""
Shared PostgREST connection for the repositories.

Built lazily from SUPABASE_URL and SUPABASE_KEY (the service key; this runs
server-side only). Tests swap in the in-memory database with `set_client`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from supabase import Client, create_client  # type: ignore[import-not-found]

from domain.errors import ConfigurationError

# .env beside the repository root, if present
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

_current_client: Optional[Any] = None


def _create_client() -> Client:
    supabase_url: str | None = os.getenv("SUPABASE_URL")
    supabase_key: str | None = os.getenv("SUPABASE_KEY")

    if not supabase_url:
        raise ConfigurationError(
            "SUPABASE_URL is not set; point it at the Supabase project"
        )

    if not supabase_key:
        raise ConfigurationError(
            "SUPABASE_KEY is not set; use the service-role key"
        )

    return create_client(supabase_url, supabase_key)


def get_client() -> Client:
    """Return the shared Supabase client, creating it on first use."""
    global _current_client
    if _current_client is None:
        _current_client = _create_client()
    return _current_client


def set_client(client: Any) -> None:
    """Override the active client (tests inject an in-memory fake)."""
    global _current_client
    _current_client = client


def reset_client() -> None:
    global _current_client
    _current_client = None


__all__ = ["get_client", "set_client", "reset_client"]
