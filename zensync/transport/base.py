"""
Abstract base class for diff transports.

A transport carries one JSON request body to the server and returns the
decoded response body. It knows nothing about snapshots or checkpoints.

Usage:
    class MyTransport(Transport):
        def diff(self, body: dict) -> dict: ...
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from zensync.models.diff import SuggestRequest, SuggestResponse


class Transport(ABC):
    """Base class every transport implements."""

    supports_suggest = False

    @abstractmethod
    def diff(self, body: dict[str, Any]) -> dict[str, Any]:
        """
        Exchange a diff request for a diff response.

        Args:
            body: Request envelope in wire form.

        Returns:
            Decoded response envelope.

        Raises:
            TransportFailure: On any network or HTTP-layer error, timeouts included.
            MalformedResponse: If the body cannot be decoded.
        """

    def suggest(self, request: SuggestRequest) -> SuggestResponse:
        """
        Stateless payee/category lookup.

        Optional: only transports that set `supports_suggest` implement it.
        """
        raise NotImplementedError(f"{self.__class__.__name__} does not support suggest")

    def close(self) -> None:
        """Release network resources."""

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
