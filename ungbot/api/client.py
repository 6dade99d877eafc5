"""
api/client.py — Async client for the UNG backend REST API.

Every endpoint answers with the same envelope::

    {"success": true, "data": ..., "error": ""}

The client unwraps ``data`` and turns anything else (non-2xx status,
``success == false``, network failure) into an :class:`APIError` whose text
is safe to show to the user as-is.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ungbot.config import API_TIMEOUT, UNG_API_URL

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_USER_AGENT = "ung-telegram-bot/0.1"

_TIMEOUT = aiohttp.ClientTimeout(total=API_TIMEOUT)


class APIError(Exception):
    """Remote call failed. ``str(err)`` is the message shown to the user."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


# ---------------------------------------------------------------------------
# UngAPIClient
# ---------------------------------------------------------------------------

class UngAPIClient:
    """
    Thin wrapper over the UNG REST API.

    One ``aiohttp.ClientSession`` is created lazily and shared by all users;
    the caller passes the user's bearer token on each call.
    """

    def __init__(
        self,
        base_url: str = UNG_API_URL,
        timeout: aiohttp.ClientTimeout = _TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": _USER_AGENT},
                timeout=self._timeout,
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    # ---------------------------------------------------------------- request

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Perform one API call and return the unwrapped ``data`` field.

        Raises
        ------
        APIError
            On non-2xx status, an envelope with ``success == false``, or a
            transport failure.
        """
        session = await self._get_session()
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self.base_url}{path}"
        try:
            async with session.request(method, url, json=payload, params=params, headers=headers) as resp:
                body = await resp.text()
                if resp.status < 200 or resp.status >= 300:
                    logger.warning("%s %s -> HTTP %s", method, path, resp.status)
                    raise APIError(f"API error: {body}", status=resp.status)
        except aiohttp.ClientError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise APIError(f"request failed: {e}") from e
        except asyncio.TimeoutError as e:
            logger.warning("%s %s timed out", method, path)
            raise APIError("request timed out") from e

        if not body:
            return None
        try:
            envelope = json.loads(body)
        except ValueError as e:
            raise APIError(f"failed to decode response: {e}") from e

        if not isinstance(envelope, dict) or "success" not in envelope:
            return envelope
        if not envelope.get("success"):
            raise APIError(envelope.get("error") or "API error: request was not successful")
        return envelope.get("data")

    async def _list(self, path: str, token: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", path, token)
        return data or []

    # ------------------------------------------------------------------- auth

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Exchange credentials for an access token.

        Returns
        -------
        dict with keys:
            access_token : str
            user         : dict  — ``id``, ``email``, ``name``
        """
        data = await self._request(
            "POST", "/api/v1/auth/login", payload={"email": email, "password": password}
        )
        if not data or not data.get("access_token"):
            raise APIError("login response did not include an access token")
        return data

    # ------------------------------------------------------------------ lists

    async def list_clients(self, token: str) -> List[Dict[str, Any]]:
        return await self._list("/api/v1/clients", token)

    async def list_contracts(self, token: str) -> List[Dict[str, Any]]:
        return await self._list("/api/v1/contracts", token)

    async def list_invoices(self, token: str) -> List[Dict[str, Any]]:
        return await self._list("/api/v1/invoices", token)

    async def list_expenses(self, token: str) -> List[Dict[str, Any]]:
        return await self._list("/api/v1/expenses", token)

    async def list_companies(self, token: str) -> List[Dict[str, Any]]:
        return await self._list("/api/v1/companies", token)

    async def list_tracking(self, token: str) -> List[Dict[str, Any]]:
        return await self._list("/api/v1/tracking", token)

    async def get_dashboard(self, token: str) -> Dict[str, Any]:
        """Monthly revenue projection for the dashboard."""
        return await self._request("GET", "/api/v1/dashboard/revenue", token) or {}

    async def search(self, token: str, query: str) -> Dict[str, Any]:
        """
        Search across clients, invoices, contracts and more.

        Returns
        -------
        dict with keys:
            query   : str
            results : list of dicts with ``type``, ``id``, ``title``, ``subtitle``
            counts  : dict  type -> number of hits
        """
        return await self._request("GET", "/api/v1/search", token, params={"q": query}) or {}

    # ---------------------------------------------------------------- creates

    async def create_client(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/v1/clients", token, payload)

    async def create_company(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/v1/companies", token, payload)

    async def create_contract(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/v1/contracts", token, payload)

    async def create_invoice(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/v1/invoices", token, payload)

    async def create_expense(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/v1/expenses", token, payload)

    async def create_tracking(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/v1/tracking", token, payload)

    async def create_gig(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/v1/gigs", token, payload)

    async def create_gig_task(
        self, token: str, gig_id: int, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._request("POST", f"/api/v1/gigs/{gig_id}/tasks", token, payload)

    # ------------------------------------------------------------------ timer

    async def start_tracking(self, token: str, project_id: int = 1, notes: str = "") -> Dict[str, Any]:
        return await self._request(
            "POST", "/api/v1/tracking/start", token, {"project_id": project_id, "notes": notes}
        )

    async def stop_tracking(self, token: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/v1/tracking/stop", token)

    # ---------------------------------------------------------------- updates

    async def update_hunter_profile(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", "/api/v1/hunter/profile", token, payload)
