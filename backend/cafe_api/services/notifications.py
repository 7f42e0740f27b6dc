"""
Push notification dispatcher for cafe staff devices (Expo push API).

Delivery is best-effort: one request per device token, every outcome is
recorded in the DispatchReport and no failure aborts the batch.
"""

import threading
from typing import Any, Optional

import httpx

from cafe_shared.config.logging import mask_token, notification_logger as logger
from cafe_shared.config.settings import Settings, settings
from cafe_shared.utils.schemas import DispatchReport, TokenDispatchResult


class PushNotificationDispatcher:
    """
    HTTP client for the push endpoint.

    Uses one pooled httpx.Client per dispatcher, created lazily and closed on
    application shutdown.
    """

    def __init__(
        self,
        config: Settings | None = None,
        client: Optional[httpx.Client] = None,
    ):
        self._settings = config or settings
        self._client = client
        self._client_lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        if self._client is not None and not self._client.is_closed:
            return self._client
        with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.Client(
                    timeout=self._settings.push_timeout_seconds,
                    limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                )
        return self._client

    def close(self) -> None:
        """Close the HTTP client. Called on application shutdown."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _payload(self, token: str, title: str, body: str, data: dict[str, Any] | None) -> dict:
        return {
            "to": token,
            "title": title,
            "body": body,
            "sound": self._settings.push_sound,
            "channelId": self._settings.push_channel_id,
            "priority": "high",
            "data": data or {},
        }

    def _send_one(self, token: str, title: str, body: str, data: dict[str, Any] | None) -> TokenDispatchResult:
        masked = mask_token(token)
        try:
            response = self._get_client().post(
                self._settings.push_endpoint_url,
                json=self._payload(token, title, body, data),
            )
            response.raise_for_status()
            ticket = response.json().get("data") or {}
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Push delivery failed", token=masked, error=str(exc))
            return TokenDispatchResult(token=masked, ok=False, error=str(exc))

        # Expo reports per-message errors with HTTP 200
        if isinstance(ticket, dict) and ticket.get("status") == "error":
            message = ticket.get("message") or "push rejected"
            logger.warning("Push rejected", token=masked, error=message)
            return TokenDispatchResult(token=masked, ok=False, error=message)

        return TokenDispatchResult(token=masked, ok=True)

    def send(
        self,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> DispatchReport:
        """
        Send one message per token.

        Returns a report with per-token outcomes. Never raises for delivery
        errors.
        """
        if not self._settings.push_enabled:
            logger.debug("Push disabled, skipping dispatch", tokens=len(tokens))
            return DispatchReport(skipped=True)

        results = [self._send_one(token, title, body, data) for token in tokens if token]
        report = DispatchReport(
            sent=sum(1 for r in results if r.ok),
            failed=sum(1 for r in results if not r.ok),
            results=results,
        )
        logger.info(
            "Push batch dispatched",
            title=title,
            sent=report.sent,
            failed=report.failed,
        )
        return report


_dispatcher: PushNotificationDispatcher | None = None


def get_push_dispatcher() -> PushNotificationDispatcher:
    """Process-wide dispatcher (FastAPI dependency)."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = PushNotificationDispatcher()
    return _dispatcher


def close_push_dispatcher() -> None:
    global _dispatcher
    if _dispatcher is not None:
        _dispatcher.close()
        _dispatcher = None
