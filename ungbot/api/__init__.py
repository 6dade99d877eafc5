"""
UNG backend API package.

Exposes a module-level singleton UngAPIClient that is lazily created on first
access and closed on shutdown.
"""
from __future__ import annotations

from typing import Optional

from ungbot.api.client import APIError, UngAPIClient

_client_instance: Optional[UngAPIClient] = None


def get_api_client() -> UngAPIClient:
    """Return (and lazily create) the singleton UngAPIClient."""
    global _client_instance
    if _client_instance is None:
        _client_instance = UngAPIClient()
    return _client_instance


async def close_api_client() -> None:
    global _client_instance
    if _client_instance is not None:
        await _client_instance.close()
        _client_instance = None


__all__ = ["APIError", "UngAPIClient", "get_api_client", "close_api_client"]
