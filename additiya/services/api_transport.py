"""
HTTP transport for the ADDITIYA REST backend.

The transport is the only place that talks httpx. It knows how to send JSON,
attach a bearer credential it is handed, bound the wait, and time the call.
It knows nothing about sessions: classifying a response as "expired" or
"rejected" is SessionController's job.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from additiya.config import APIConfig
from additiya.domain.errors import NetworkFailure

logger = structlog.get_logger(__name__)

# Latency thresholds for logging (milliseconds)
SLOW_CALL_THRESHOLD_MS = 2000
VERY_SLOW_CALL_THRESHOLD_MS = 5000


@dataclass(frozen=True)
class ApiResponse:
    """Status code plus decoded JSON object (empty when the body is not an object)."""

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class ApiTransport:
    """Thin async wrapper around ``httpx.AsyncClient`` with a hard deadline per call."""

    def __init__(self, config: APIConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.timeout_seconds, connect=config.connect_timeout_seconds),
            headers={"Accept": "application/json"},
        )
        self.logger = logger.bind(component="api_transport")

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> ApiResponse:
        """
        Perform one request.

        Raises:
            NetworkFailure: the request never produced an HTTP response
                (connection error, timeout, deadline exceeded).
        """
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        start_time = time.perf_counter()
        status_code: int | None = None
        error_msg: str | None = None

        try:
            response = await asyncio.wait_for(
                self._client.request(method, path, json=json, headers=headers),
                timeout=self.config.deadline_seconds,
            )
            status_code = response.status_code
            return ApiResponse(status_code=status_code, body=self._decode(response))

        except (TimeoutError, httpx.TimeoutException) as e:
            error_msg = f"{type(e).__name__}: {e}"
            raise NetworkFailure("timeout") from e

        except httpx.RequestError as e:
            error_msg = f"{type(e).__name__}: {e}"
            raise NetworkFailure("connection") from e

        finally:
            latency_ms = (time.perf_counter() - start_time) * 1000
            fields = {
                "method": method,
                "path": path,
                "status": status_code,
                "latency_ms": round(latency_ms, 2),
                "authenticated": token is not None,
            }
            if error_msg:
                self.logger.warning("http_request_failed", error=error_msg, **fields)
            elif latency_ms > VERY_SLOW_CALL_THRESHOLD_MS:
                self.logger.warning("http_request_very_slow", **fields)
            elif latency_ms > SLOW_CALL_THRESHOLD_MS:
                self.logger.warning("http_request_slow", **fields)
            else:
                self.logger.debug("http_request_completed", **fields)

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def aclose(self) -> None:
        await self._client.aclose()
