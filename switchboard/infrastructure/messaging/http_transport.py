"""HTTP message transport backed by httpx."""

import logging

import httpx

from switchboard.core.exceptions import PermanentTransportError, TransientTransportError
from switchboard.domain.models.message import Message, MessageStatus
from switchboard.infrastructure.messaging.base import DeliveryReceipt, MessageTransport

logger = logging.getLogger(__name__)

# Statuses worth retrying besides 5xx
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})


def classify_http_error(exc: Exception) -> Exception:
    """Map an httpx failure onto the transport error taxonomy.

    Timeouts, connection errors, rate limiting and server errors are
    transient; other HTTP errors mean the payload was rejected.
    """
    if isinstance(exc, httpx.TimeoutException):
        return TransientTransportError(f"timeout: {exc}")
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        if code >= 500 or code in RETRYABLE_STATUS_CODES:
            return TransientTransportError(f"server_error: HTTP {code}")
        return PermanentTransportError(f"rejected: HTTP {code}")
    if isinstance(exc, httpx.RequestError):
        return TransientTransportError(f"network_error: {exc}")
    return PermanentTransportError(str(exc))


class HttpMessageTransport(MessageTransport):
    """Posts messages and receipts to a messaging backend over HTTP.

    Endpoints (relative to ``base_url``):
        POST /messages             body: message payload, returns {"id": server_id}
        POST /messages/{id}/status body: {"conversationId", "status"}
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
        )

    async def deliver(self, message: Message) -> DeliveryReceipt:
        try:
            resp = await self._client.post("/messages", json=message.to_payload())
            resp.raise_for_status()
        except httpx.HTTPError as e:
            error = classify_http_error(e)
            logger.warning(f"Delivery of {message.id} failed: {error}")
            raise error from e

        server_id = None
        if resp.content:
            try:
                data = resp.json()
            except ValueError:
                data = {}
            if isinstance(data, dict):
                server_id = data.get("id")
        return DeliveryReceipt(
            message_id=message.id,
            status=MessageStatus.SENT,
            server_id=str(server_id) if server_id is not None else None,
        )

    async def send_receipt(
        self, message_id: str, conversation_id: str, status: MessageStatus
    ) -> None:
        try:
            resp = await self._client.post(
                f"/messages/{message_id}/status",
                json={"conversationId": conversation_id, "status": status.value},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise classify_http_error(e) from e

    async def close(self) -> None:
        await self._client.aclose()
