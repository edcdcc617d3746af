"""
HTTP call issuer using httpx.

Error responses are returned, not raised: the player decides what a non-ok
status means for the run.
"""

from typing import Any, Dict, Optional

import httpx

from apimacro.core.models import CallResponse
from apimacro.errors import CallExecutionError
from apimacro.logging import get_macro_logger
from apimacro.transport.base import CallIssuer

logger = get_macro_logger(__name__)

BEARER_PREFIX = "Bearer "

# Methods whose payload travels as query parameters
QUERY_METHODS = ("GET", "DELETE")


class HTTPCallIssuer(CallIssuer):
    """
    Issue calls against a REST API.

    Example:
        async with HTTPCallIssuer("https://fw.example.com", token="...") as issuer:
            response = await issuer.issue("GET", "/api/core/firmware/status")
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize issuer.

        Args:
            base_url: API base URL, prefixed to every path
            token: Bearer token (with or without "Bearer" prefix)
            timeout: Request timeout in seconds
            client: Pre-built client, mostly for tests
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(token),
            timeout=timeout,
            follow_redirects=True,
        )

    @staticmethod
    def _headers(token: Optional[str]) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if token:
            if not token.startswith(BEARER_PREFIX):
                token = f"{BEARER_PREFIX}{token}"
            headers["Authorization"] = token
        return headers

    async def issue(self, method: str, path: str, payload: Any = None) -> CallResponse:
        method = method.upper()
        kwargs: Dict[str, Any] = {}
        if payload is not None:
            if method in QUERY_METHODS and isinstance(payload, dict):
                kwargs["params"] = payload
            else:
                kwargs["json"] = payload

        logger.debug(f"{method} {self.base_url}{path}")
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise CallExecutionError(f"{method} {path} failed: {e}", cause=e) from e

        return CallResponse(
            status=response.status_code,
            data=self._body(response),
            headers=dict(response.headers),
        )

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
