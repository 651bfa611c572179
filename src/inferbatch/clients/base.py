"""Abstract inference client (ports-and-adapters pattern).

The pipeline only talks to this interface, so providers can be swapped
and tests can substitute fakes without touching the execution core.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from inferbatch.core.models import InferenceResponse

DEFAULT_TIMEOUT_SECONDS = 5.0


class InferenceError(Exception):
    """Raised for any failed inference call (transport, status or body)."""


class InferenceClient(ABC):
    """Abstract async client for a remote inference service."""

    @abstractmethod
    async def infer(self, prompt: str) -> InferenceResponse:
        """Submit *prompt* and return the normalised response."""
        ...

    async def aclose(self) -> None:
        """Release network resources held by the client."""

    async def __aenter__(self) -> InferenceClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


class HttpInferenceClient(InferenceClient):
    """Shared plumbing for clients backed by :class:`httpx.AsyncClient`."""

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str],
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json", **headers},
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Every failure mode is folded into :class:`InferenceError` so the
        retry layer sees a single exception type.
        """
        try:
            response = await self._http.request(method, url, **kwargs)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as exc:
            raise InferenceError(f"{method} {url} timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise InferenceError(
                f"{method} {url} returned HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise InferenceError(f"{method} {url} failed: {exc}") from exc
        except ValueError as exc:
            raise InferenceError(f"{method} {url} returned a non-JSON body") from exc

        if not isinstance(body, dict):
            raise InferenceError(f"{method} {url} returned {type(body).__name__}, expected object")
        return body
