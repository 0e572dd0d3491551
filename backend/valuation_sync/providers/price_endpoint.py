"""Client for the external price endpoint."""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

import httpx
from opentelemetry.propagate import inject
from pydantic import ValidationError

from valuation_sync.config import AppSettings, get_settings
from valuation_sync.models import ErrorKind
from valuation_sync.schemas.prices import PriceResponseSchema
from valuation_sync.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class PriceEndpointError(RuntimeError):
    """Raised when the price endpoint cannot produce a usable payload."""

    def __init__(self, message: str, kind: ErrorKind) -> None:
        super().__init__(message)
        self.kind = kind


def _cache_buster() -> int:
    return int(time.time() * 1000)


class PriceEndpointClient:
    """Fetch quotes for a ticker list from the price endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._rate_limiter = rate_limiter

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
    ) -> "PriceEndpointClient":
        settings = settings or get_settings()
        return cls(
            settings.price_endpoint_url,
            timeout_seconds=settings.price_request_timeout_seconds,
            token=settings.price_endpoint_token,
            rate_limiter=rate_limiter,
        )

    async def __aenter__(self) -> "PriceEndpointClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_quotes(self, tickers: Sequence[str]) -> PriceResponseSchema:
        """Return the parsed payload for ``tickers``.

        Raises ``PriceEndpointError`` for transport failures, non-2xx statuses and
        payloads without a ``prices`` map.
        """

        if not tickers:
            raise ValueError("fetch_quotes requires at least one ticker")
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()

        params: dict[str, Any] = {"tickers": ",".join(tickers), "ts": _cache_buster()}
        headers: dict[str, str] = {"Cache-Control": "no-store", "Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        # Inject current trace context so the price source can link its spans
        try:
            inject(headers)
        except Exception:
            # Best-effort; tracing must never block a poll
            pass

        logger.debug("Requesting %d tickers from %s", len(tickers), self.base_url)
        try:
            response = await self._client.get(
                self.base_url,
                params=params,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise PriceEndpointError(f"Price endpoint timed out: {exc}", ErrorKind.TIMEOUT) from exc
        except httpx.HTTPError as exc:
            raise PriceEndpointError(f"Failed to reach price endpoint: {exc}", ErrorKind.NETWORK) from exc

        if response.status_code >= 400:
            detail: Any
            try:
                payload = response.json()
                detail = payload.get("error", payload) if isinstance(payload, dict) else payload
            except ValueError:
                detail = response.text
            raise PriceEndpointError(
                f"Price endpoint error {response.status_code}: {detail}",
                ErrorKind.HTTP_STATUS,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise PriceEndpointError("Price endpoint returned invalid JSON payload", ErrorKind.MALFORMED) from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("prices"), dict):
            raise PriceEndpointError("Price endpoint response has no prices map", ErrorKind.MALFORMED)

        try:
            return PriceResponseSchema.model_validate(payload)
        except ValidationError as exc:
            raise PriceEndpointError(f"Price endpoint payload rejected: {exc}", ErrorKind.MALFORMED) from exc


__all__ = ["PriceEndpointClient", "PriceEndpointError"]
