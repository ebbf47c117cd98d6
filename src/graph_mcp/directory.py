"""Minimal Microsoft Graph directory client used for credential probes.

Only the handful of read calls the validator and tenant checks need. Each
call acquires a token from an azure-identity credential and issues a single
Graph request; both steps share the configured timeout. The token is requested
for the cloud the base URL points at. Failures are raised as typed exceptions:

- DirectoryAuthenticationError: the identity provider rejected the credential
  (or Graph answered 401)
- DirectoryPermissionError: Graph answered 403
- GraphAPIError: any other non-success response, or the identity provider
  could not be reached
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx
from azure.core.exceptions import (
    ClientAuthenticationError,
    ServiceRequestError,
    ServiceResponseError,
)

from .auth import GRAPH_BASE, graph_scope
from .exceptions import (
    DirectoryAuthenticationError,
    DirectoryPermissionError,
    GraphAPIError,
)
from .validators import validate_graph_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _graph_error(response: httpx.Response) -> tuple[str | None, str]:
    """Extract (code, message) from a Graph OData error body."""
    try:
        body = response.json()
    except ValueError:
        return None, response.text[:200] or f"HTTP {response.status_code}"

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("code"), error.get("message") or f"HTTP {response.status_code}"
    return None, f"HTTP {response.status_code}"


class GraphDirectoryClient:
    def __init__(
        self,
        credential: Any,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str = GRAPH_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credential = credential
        self._timeout = timeout
        self._base_url = validate_graph_url(base_url, "base_url")
        self._scope = graph_scope(self._base_url)
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def scope(self) -> str:
        return self._scope

    async def _access_token(self) -> str:
        # azure-identity's sync credentials block; run them off the event loop
        try:
            token = await asyncio.wait_for(
                asyncio.to_thread(self._credential.get_token, self._scope),
                timeout=self._timeout,
            )
        except ClientAuthenticationError as e:
            # azure-identity also reports unreachable endpoints this way
            if isinstance(e.__cause__, (ServiceRequestError, ServiceResponseError)):
                raise GraphAPIError(
                    f"Could not reach the identity provider: {e.__cause__}"
                ) from e
            raise DirectoryAuthenticationError(str(e)) from e
        return token.token

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        token = await self._access_token()
        url = f"{self._base_url}{path}"
        start_time = time.time()

        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )

        duration = (time.time() - start_time) * 1000
        logger.debug(
            f"GET {path} -> {response.status_code} ({duration:.2f}ms)",
            extra={"duration_ms": round(duration, 2)},
        )

        if response.status_code == 401:
            code, message = _graph_error(response)
            raise DirectoryAuthenticationError(f"{code or 'Unauthorized'}: {message}")
        if response.status_code == 403:
            code, message = _graph_error(response)
            raise DirectoryPermissionError(message, error_code=code)
        if response.is_error:
            code, message = _graph_error(response)
            raise GraphAPIError(
                f"HTTP {response.status_code}: {message}",
                status_code=response.status_code,
                error_code=code,
            )

        if not response.content:
            return {}
        payload = response.json()
        if not isinstance(payload, dict):
            raise GraphAPIError(f"Unexpected response shape from {path}")
        return payload

    async def list_applications(self, top: int = 1) -> list[dict[str, Any]]:
        result = await self._get("/applications", params={"$top": top})
        return result.get("value", [])

    async def list_users(self, top: int = 1) -> list[dict[str, Any]]:
        result = await self._get("/users", params={"$top": top})
        return result.get("value", [])

    async def get_organization(self) -> dict[str, Any] | None:
        result = await self._get("/organization")
        values = result.get("value", [])
        return values[0] if values else None
