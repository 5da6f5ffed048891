"""HTTP client for the favorites sync backend.

One attempt per call: no retry, backoff or caching here. Resilience is the
scheduler's job.
"""

import json
import logging
from typing import TYPE_CHECKING

import httpx

from .errors import EmptyResponseError, ServerError, SyncConnectionError
from .models import PullResponse, WireFavorite

if TYPE_CHECKING:
    from ..identity import IdentityProvider

logger = logging.getLogger(__name__)

PUSH_PATH = "/api/v1/sync/push"
PULL_PATH = "/api/v1/sync/pull"


class RemoteSyncClient:
    """Client for the backend's push/pull endpoints."""

    def __init__(
        self,
        base_url: str,
        identity: "IdentityProvider | None" = None,
        timeout: float = 30.0,
        user_agent: str = "poisync/0.1",
        since_param: str = "since",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Backend base URL (e.g., "https://api.example.com").
            identity: Source of the bearer token, if the backend wants one.
            timeout: Request timeout in seconds.
            user_agent: User-Agent header sent with every request.
            since_param: Query parameter carrying the pull cursor.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent
        self.since_param = since_param
        self._identity = identity
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "User-Agent": self.user_agent,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _auth_headers(self) -> dict[str, str]:
        token = self._identity.token() if self._identity else None
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send one request, mapping transport failures and non-2xx codes."""
        client = await self._get_client()
        try:
            response = await client.request(
                method, path, headers=self._auth_headers(), **kwargs
            )
        except httpx.TimeoutException as e:
            raise SyncConnectionError(f"Request to {path} timed out", e) from e
        except httpx.ConnectError as e:
            raise SyncConnectionError(f"Could not connect to {self.base_url}", e) from e
        except httpx.TransportError as e:
            raise SyncConnectionError(f"Network error: {e}", e) from e

        if not response.is_success:
            logger.debug(
                f"{method} {path} -> HTTP {response.status_code}: {response.text[:200]}"
            )
            raise ServerError(response.status_code, body=response.text)

        return response

    async def push(self, records: list[WireFavorite]) -> None:
        """Upload a batch of favorites. All-or-nothing at the HTTP level.

        Raises:
            SyncConnectionError: The backend could not be reached.
            ServerError: The backend answered with a non-2xx status.
        """
        payload = {"favorites": [r.to_dict() for r in records]}
        await self._send("POST", PUSH_PATH, json=payload)
        logger.debug(f"Pushed {len(records)} favorites")

    async def pull(self, user_id: str, since: str | None = None) -> PullResponse:
        """Fetch favorites changed since ``since`` (None or "" means all).

        Raises:
            SyncConnectionError: The backend could not be reached.
            ServerError: The backend answered with a non-2xx status.
            EmptyResponseError: 2xx without a parsable JSON object body, or
                with a favorite missing its ``poiId``.
        """
        params = {"userId": user_id, self.since_param: since or ""}
        response = await self._send("GET", PULL_PATH, params=params)

        if not response.content.strip():
            raise EmptyResponseError("Empty response from server")
        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise EmptyResponseError("Unparsable response from server", e) from e
        if not isinstance(data, dict):
            raise EmptyResponseError("Unexpected response shape from server")

        raw_records = data.get("favorites")
        if raw_records is None:
            raw_records = data.get("records") or []

        try:
            records = [WireFavorite.from_dict(r, user_id=user_id) for r in raw_records]
        except (KeyError, TypeError, ValueError) as e:
            raise EmptyResponseError(f"Malformed favorite in response: {e}", e) from e

        return PullResponse(
            server_timestamp=data.get("serverTimestamp") or None,
            records=records,
        )

    async def health_check(self) -> bool:
        """Check whether the backend answers at all.

        Returns:
            True if the backend responded without a server error.
        """
        try:
            client = await self._get_client()
            response = await client.get("/actuator/health")
            return response.status_code < 500
        except httpx.HTTPError as e:
            logger.debug(f"Health check failed: {e}")
            return False
