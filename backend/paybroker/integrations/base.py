"""Shared plumbing for gateway HTTP clients.

Every outbound call goes through ``GatewayClient._request`` so timeouts,
transport errors and non-2xx responses surface uniformly as
``UpstreamGatewayError``. Secrets are never included in error messages.
"""

import hashlib
from dataclasses import dataclass, field

import httpx
import structlog

from paybroker.core.config import get_settings
from paybroker.core.exceptions import UpstreamGatewayError

logger = structlog.get_logger(__name__)


@dataclass
class VerifiedPayment:
    """Gateway-verified view of a transaction, normalized across providers."""

    provider: str
    reference: str
    gateway_id: str
    successful: bool
    status: str
    amount: float  # major units
    currency: str
    metadata: dict = field(default_factory=dict)
    customer_code: str | None = None
    subscription_code: str | None = None


def secret_digest(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class GatewayClient:
    """Base async client for a payment gateway's REST API."""

    provider: str = ""
    base_url: str = ""

    def __init__(
        self,
        secret_key: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._secret_key = secret_key
        self.secret_digest = secret_digest(secret_key)
        self._timeout = timeout if timeout is not None else get_settings().gateway_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self._secret_key}",
                "Content-Type": "application/json",
            },
        )

    async def _request(self, method: str, path: str, json: dict | None = None, params: dict | None = None) -> dict:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json, params=params)
        except httpx.TimeoutException:
            logger.warning("gateway_timeout", provider=self.provider, path=path)
            raise UpstreamGatewayError(self.provider, "request timed out") from None
        except httpx.HTTPError as exc:
            logger.warning("gateway_transport_error", provider=self.provider, path=path, error=type(exc).__name__)
            raise UpstreamGatewayError(self.provider, "gateway unreachable") from None

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            logger.warning(
                "gateway_error_response",
                provider=self.provider,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise UpstreamGatewayError(self.provider, message or f"HTTP {response.status_code}")

        if not isinstance(body, dict):
            raise UpstreamGatewayError(self.provider, "unexpected response body")
        return body


class ClientMemo:
    """Last-used client memoization keyed by a digest of the secret.

    Process-local and non-shared: each worker keeps its own copy. Rotating the
    secret changes the digest and a fresh client is built on next use.
    """

    def __init__(self, factory):
        self._factory = factory
        self._cached: GatewayClient | None = None

    def get(self, secret_key: str) -> GatewayClient:
        digest = secret_digest(secret_key)
        if self._cached is None or self._cached.secret_digest != digest:
            self._cached = self._factory(secret_key)
        return self._cached

    def clear(self) -> None:
        self._cached = None
