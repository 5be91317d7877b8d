"""
HTTP transport using requests.

Posts JSON envelopes to the ZenMoney v8 endpoints with a bearer token.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import requests
from pydantic import ValidationError

from zensync.errors import MalformedResponse, TransportFailure
from zensync.models.diff import SuggestRequest, SuggestResponse
from zensync.transport.base import Transport

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.zenmoney.ru"
DIFF_PATH = "/v8/diff/"
SUGGEST_PATH = "/v8/suggest/"


class HttpTransport(Transport):
    """JSON over HTTPS POST."""

    supports_suggest = True

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        verify: bool = True,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not token:
            raise ValueError("HTTP transport requires an API token")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._verify = verify
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def diff(self, body: dict[str, Any]) -> dict[str, Any]:
        return self._post(DIFF_PATH, body)

    def suggest(self, request: SuggestRequest) -> SuggestResponse:
        payload = self._post(SUGGEST_PATH, request.to_wire())
        try:
            return SuggestResponse.model_validate(payload)
        except ValidationError as e:
            raise MalformedResponse(f"Invalid suggest response: {e}") from e

    def close(self) -> None:
        self._session.close()

    def _post(self, path: str, body: dict[str, Any]) -> Any:
        url = f"{self._base_url}{path}"
        logger.debug("POST %s", url)
        try:
            response = self._session.post(url, json=body, timeout=self._timeout, verify=self._verify)
        except requests.Timeout as e:
            raise TransportFailure(f"Request to {url} timed out after {self._timeout}s") from e
        except requests.RequestException as e:
            raise TransportFailure(f"Request to {url} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            text = response.text or "unknown error"
            raise TransportFailure(
                f"API error (status {response.status_code}): {text}",
                status=response.status_code,
                body=text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(f"Response from {url} is not valid JSON: {e}") from e

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self._base_url}>"
