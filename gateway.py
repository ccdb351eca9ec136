"""CRM gateway: REST RPC calls against the Bitrix24 inbound webhook, with 429 retry."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from config import CRM_MAX_RETRIES, CRM_TIMEOUT, get_crm_base_url

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """A CRM call failed for good."""

    kind = "gateway_error"

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class RateLimited(GatewayError):
    kind = "rate_limited"

    def __init__(self, operation: str, attempts: int):
        super().__init__(operation, f"rate limited after {attempts} attempts")
        self.attempts = attempts


class NetworkError(GatewayError):
    kind = "network_error"


class RemoteError(GatewayError):
    kind = "remote_error"

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        super().__init__(operation, message)
        self.status_code = status_code


class CrmGateway:
    """
    Thin async client for `<base_url>/<operation>` calls.

    HTTP 429 is retried with linear backoff (1x, 2x, 3x backoff_unit) for up to
    max_retries extra attempts. Reads and writes are retried alike, so a write
    that reached the CRM before the 429 may be applied twice.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        max_retries: int = CRM_MAX_RETRIES,
        timeout: float = CRM_TIMEOUT,
        backoff_unit: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = (base_url if base_url is not None else get_crm_base_url()).rstrip("/")
        self.max_retries = max_retries
        self.timeout = timeout
        self.backoff_unit = backoff_unit
        self._transport = transport
        self._sleep = sleep

    async def call(
        self,
        operation: str,
        method: str = "POST",
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Invoke one CRM method and return the decoded JSON body."""
        if not self.base_url:
            raise RemoteError(operation, "CRM base URL not configured. Set BITRIX24_WEBHOOK_URL.")
        url = f"{self.base_url}/{operation}"
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            while True:
                attempt += 1
                try:
                    response = await client.request(method, url, json=params or {})
                except httpx.RequestError as e:
                    raise NetworkError(operation, f"failed to reach CRM: {e}") from e

                if response.status_code == 429:
                    if attempt > self.max_retries:
                        raise RateLimited(operation, attempt)
                    delay = attempt * self.backoff_unit
                    logger.warning("Rate limit hit on %s, retrying in %.1fs (attempt %d)", operation, delay, attempt)
                    await self._sleep(delay)
                    continue

                return self._decode(operation, response)

    @staticmethod
    def _decode(operation: str, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = None
        if response.is_error:
            detail = response.text[:200]
            if isinstance(body, dict) and body.get("error"):
                detail = body.get("error_description") or body["error"]
            raise RemoteError(operation, f"HTTP {response.status_code}: {detail}", response.status_code)
        if not isinstance(body, dict):
            raise RemoteError(operation, "response is not a JSON object", response.status_code)
        if body.get("error"):
            raise RemoteError(
                operation,
                str(body.get("error_description") or body["error"]),
                response.status_code,
            )
        return body
