"""
League source API client.

This module provides the HTTP client for the remote league source: login,
season/division discovery, the scrape-table endpoint and the safe-mode
switches. Every authenticated call takes an explicit Session; the client
itself holds no credential state.
"""

import time
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import urljoin

import httpx

from ..utils.logger import get_logger, pipeline_logger
from ..utils.metrics import get_metrics

if TYPE_CHECKING:
    from .session import Session

logger = get_logger()
metrics = get_metrics()

USER_AGENT = "league-history/1.0"
AUTH_STATUS_CODES = (401, 403)


class LeagueAPIError(Exception):
    """Base exception for league source API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class AuthFailure(LeagueAPIError):
    """The credential was rejected, missing or has expired. Fatal for a run."""


class LeagueAPIClient:
    """
    Client for the league source's scraping API.

    No retries happen here: retry policy belongs to the scheduler so that
    every request stays inside the pacing contract.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used to stub the network in tests)
        """
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self._transport = transport

    def headers(self, session: Optional["Session"] = None) -> dict[str, str]:
        """Request headers, with the bearer token when a session is given."""
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        if session is not None:
            headers.update(session.authorization_header())
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        session: Optional["Session"] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Make a single API request.

        Args:
            method: HTTP method
            endpoint: API endpoint path relative to the base URL
            session: Session whose bearer token is attached (None for login)
            data: JSON request body

        Returns:
            Decoded JSON response

        Raises:
            AuthFailure: On 401/403 for an authenticated request
            LeagueAPIError: On any other non-2xx, network or decoding error
        """
        url = urljoin(self.base_url, endpoint)
        start_time = time.time()

        try:
            async with self._client() as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self.headers(session),
                    json=data,
                )
                response.raise_for_status()
                result = response.json()

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            duration = time.time() - start_time
            metrics.record_api_call(endpoint, method, status_code, duration)
            pipeline_logger.log_api_call(
                endpoint, method, status_code=status_code, duration_ms=duration * 1000
            )

            error_msg = f"{method} {endpoint} failed with status {status_code}"
            response_data = _safe_json(e.response)
            if status_code in AUTH_STATUS_CODES:
                raise AuthFailure(
                    error_msg, status_code=status_code, response_data=response_data
                ) from e
            raise LeagueAPIError(
                error_msg, status_code=status_code, response_data=response_data
            ) from e

        except httpx.RequestError as e:
            duration = time.time() - start_time
            metrics.record_api_call(endpoint, method, 0, duration)
            pipeline_logger.log_api_call(endpoint, method, error=str(e))
            raise LeagueAPIError(f"{method} {endpoint} request failed: {e}") from e

        except ValueError as e:
            raise LeagueAPIError(
                f"{method} {endpoint} returned invalid JSON: {e}",
                status_code=response.status_code,
            ) from e

        duration = time.time() - start_time
        metrics.record_api_call(endpoint, method, response.status_code, duration)
        pipeline_logger.log_api_call(
            endpoint,
            method,
            status_code=response.status_code,
            duration_ms=duration * 1000,
        )
        return result

    async def login(self, email: str, password: str) -> str:
        """
        Exchange credentials for a bearer token.

        Returns:
            The access token

        Raises:
            AuthFailure: If the login is rejected or returns no token
            LeagueAPIError: On transport errors
        """
        try:
            result = await self._make_request(
                "POST", "auth/login", data={"email": email, "password": password}
            )
        except LeagueAPIError as e:
            if e.status_code in (400, *AUTH_STATUS_CODES):
                raise AuthFailure(
                    f"Login rejected for {email}",
                    status_code=e.status_code,
                    response_data=e.response_data,
                ) from e
            raise

        token = result.get("access_token") if isinstance(result, dict) else None
        if not token:
            raise AuthFailure("Login response did not include an access token")
        return str(token)

    async def get_seasons(self, session: "Session") -> Any:
        """GET scraping/seasons; returns the raw payload (list or envelope)."""
        return await self._make_request("GET", "scraping/seasons", session=session)

    async def get_divisions(self, session: "Session", season_id: str) -> Any:
        """GET scraping/divisions/{season_id}; returns the raw payload."""
        return await self._make_request(
            "GET", f"scraping/divisions/{season_id}", session=session
        )

    async def scrape_table(
        self, session: "Session", payload: dict[str, Any]
    ) -> Any:
        """POST scraping/scrape-table; returns the raw result envelope."""
        return await self._make_request(
            "POST", "scraping/scrape-table", session=session, data=payload
        )

    async def get_safe_mode(self, session: "Session") -> bool:
        """Read the remote safe-mode flag."""
        result = await self._make_request("GET", "scraping/status", session=session)
        if not isinstance(result, dict) or "safeMode" not in result:
            raise LeagueAPIError("scraping/status response has no safeMode flag")
        return bool(result["safeMode"])

    async def set_safe_mode(self, session: "Session", enabled: bool) -> None:
        """Enable or disable remote safe mode (database writes are skipped when on)."""
        if enabled:
            await self._make_request(
                "PUT", "scraping/config", session=session, data={"safeMode": True}
            )
        else:
            await self._make_request(
                "PUT", "scraping/disable-safe-mode", session=session, data={}
            )
        logger.info(
            f"Safe mode {'enabled' if enabled else 'disabled'}",
            extra={"safe_mode": enabled},
        )


def _safe_json(response: httpx.Response) -> Optional[Any]:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
