"""HTTP client for the SFU media server."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    """Raised when an SFU call fails or returns a non-success status."""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.message = message
        self.status_code = status_code


def _extract_error_message(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            body = exc.response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = body.get("message") or body.get("error")
            if detail:
                return str(detail)
        return exc.response.text or str(exc)
    return str(exc) or exc.__class__.__name__


class SfuGateway:
    """Relay signaling operations to the SFU's fixed HTTP contract.

    The gateway keeps no state besides the base URL and a pooled client. It
    never retries: every failure surfaces as a :class:`GatewayError` for the
    caller to report.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: Optional[float] = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        log_context: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._get_client().request(method, path, params=params, json=json)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            message = _extract_error_message(exc)
            status_code = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            context = " ".join(f"{key}={value}" for key, value in (log_context or {}).items())
            logger.error("SFU %s failed %s status=%s error=%s", operation, context, status_code, message)
            raise GatewayError(operation, message, status_code) from exc

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            logger.error("SFU %s returned a non-JSON body", operation)
            raise GatewayError(operation, "invalid JSON response", response.status_code) from exc

    async def list_producers(self, peer_id: str) -> dict[str, Any]:
        """Return ``{"producers": [...]}`` for the given peer."""

        return await self._request(
            "list_producers",
            "GET",
            "/peer-producers",
            params={"peerId": peer_id},
            log_context={"peer_id": peer_id},
        )

    async def get_capabilities(self) -> dict[str, Any]:
        return await self._request("get_capabilities", "GET", "/rtp-capabilities")

    async def create_transport(self, peer_id: str) -> dict[str, Any]:
        return await self._request(
            "create_transport",
            "POST",
            "/create-web-rtc-transport",
            json={"peerId": peer_id},
            log_context={"peer_id": peer_id},
        )

    async def connect_transport(self, transport_id: str, dtls_parameters: dict[str, Any], peer_id: str) -> Any:
        return await self._request(
            "connect_transport",
            "POST",
            "/connect-transport",
            json={"transportId": transport_id, "dtlsParameters": dtls_parameters, "peerId": peer_id},
            log_context={"peer_id": peer_id, "transport_id": transport_id},
        )

    async def produce(
        self, transport_id: str, kind: str, rtp_parameters: dict[str, Any], peer_id: str
    ) -> dict[str, Any]:
        """Create a producer; the SFU answers with at least ``{"id": ...}``."""

        return await self._request(
            "produce",
            "POST",
            "/produce",
            json={
                "transportId": transport_id,
                "kind": kind,
                "rtpParameters": rtp_parameters,
                "peerId": peer_id,
            },
            log_context={"peer_id": peer_id, "kind": kind},
        )

    async def consume(self, transport_id: str, producer_id: str, kind: str, peer_id: str) -> dict[str, Any]:
        return await self._request(
            "consume",
            "POST",
            "/consume",
            json={
                "transportId": transport_id,
                "producerId": producer_id,
                "kind": kind,
                "peerId": peer_id,
            },
            log_context={"peer_id": peer_id, "producer_id": producer_id},
        )
