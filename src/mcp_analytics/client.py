"""Batched delivery of analytics events to the ingest API."""

import atexit
import logging
import threading
from typing import Optional, Sequence

from pydantic import ValidationError

from .config import (
    DEFAULT_API_URL,
    DEFAULT_BATCH_SIZE,
    DEFAULT_FLUSH_INTERVAL_MS,
    MAX_BATCH_SIZE,
    AnalyticsConfig,
)
from .exceptions import APIError, BatchSizeError, ConfigurationError
from .schema import AnalyticsEvent, IngestResponse

logger = logging.getLogger("mcp_analytics.client")


class AnalyticsClient:
    """Queues events and ships them to the ingest API in batches.

    One client is shared by every instrumented tool on a server. Events are
    flushed when the queue reaches ``batch_size`` and on a fixed interval by
    a background worker thread. Delivery is best-effort: a batch that fails
    to send is logged and dropped, never re-queued.
    """

    def __init__(
        self,
        api_key: Optional[str],
        api_url: Optional[str] = None,
        batch_size: Optional[int] = None,
        flush_interval: Optional[int] = None,
    ):
        self.api_key = api_key
        self.api_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.batch_size = max(1, min(batch_size or DEFAULT_BATCH_SIZE, MAX_BATCH_SIZE))
        # milliseconds; 0 disables the periodic flush
        self.flush_interval = (
            DEFAULT_FLUSH_INTERVAL_MS if flush_interval is None else flush_interval
        )

        self._queue: list[AnalyticsEvent] = []
        self._lock = threading.Lock()
        self._destroyed = False
        self._wake = threading.Event()
        self._stopped = threading.Event()
        self._worker = threading.Thread(
            target=self._run, name="mcp-analytics-flush", daemon=True
        )
        self._worker.start()
        atexit.register(self.destroy)

    @classmethod
    def from_config(cls, config: AnalyticsConfig) -> "AnalyticsClient":
        return cls(
            api_key=config.api_key,
            api_url=config.api_url,
            batch_size=config.batch_size,
            flush_interval=config.flush_interval,
        )

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def pending(self) -> int:
        """Number of events waiting to be flushed."""
        with self._lock:
            return len(self._queue)

    def queue_event(self, event: AnalyticsEvent) -> None:
        """Add an event to the queue. Non-blocking.

        When the queue reaches the batch size the worker is woken to flush;
        the caller never waits on the network. An event that cannot be
        serialized is logged and dropped here so it cannot sink a batch.
        """
        try:
            event.to_wire()
        except (ValueError, TypeError) as exc:
            logger.warning(
                "MCP Analytics dropping unserializable %s event: %s",
                getattr(event, "event_type", type(event).__name__),
                exc,
            )
            return

        with self._lock:
            if self._destroyed:
                return
            self._queue.append(event)
            full = len(self._queue) >= self.batch_size
        if full:
            self._wake.set()

    def flush(self) -> None:
        """Send up to one batch of queued events right now."""
        if self._destroyed:
            return
        batch = self._claim_batch()
        if batch:
            self._deliver(batch)

    def send_events(self, events: Sequence[AnalyticsEvent]) -> IngestResponse:
        """POST a batch of 1-25 events to the ingest API.

        Raises:
            ConfigurationError: no API key is configured.
            BatchSizeError: the batch is empty or larger than 25 events.
            APIError: the request failed, returned a non-2xx status or an
                unreadable body.
        """
        import httpx

        if not self.api_key:
            raise ConfigurationError("Analytics API key not configured")
        if not events or len(events) > MAX_BATCH_SIZE:
            raise BatchSizeError(len(events), MAX_BATCH_SIZE)

        payload = {"events": [event.to_wire() for event in events]}
        try:
            response = httpx.post(
                f"{self.api_url}/ingest",
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "X-API-Key": self.api_key,
                },
            )
        except httpx.HTTPError as exc:
            raise APIError(f"Network error: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise APIError(_error_message(response), response.status_code)

        try:
            return IngestResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise APIError(
                f"Malformed ingest response: {exc}", response.status_code
            ) from exc

    def destroy(self) -> None:
        """Stop the worker and send whatever is still queued. Idempotent."""
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True

        self._stopped.set()
        self._wake.set()
        if self._worker is not threading.current_thread():
            self._worker.join(timeout=10)

        while True:
            batch = self._claim_batch()
            if not batch:
                break
            self._deliver(batch)

    def _claim_batch(self) -> list[AnalyticsEvent]:
        # Removal under the lock decides which flush owns which events.
        with self._lock:
            batch = self._queue[: self.batch_size]
            del self._queue[: self.batch_size]
            return batch

    def _deliver(self, batch: list[AnalyticsEvent]) -> None:
        try:
            response = self.send_events(batch)
        except Exception as exc:
            logger.warning(
                "MCP Analytics flush failed, dropping %d events: %s",
                len(batch),
                exc,
            )
            return
        if response.validation_errors:
            logger.debug(
                "MCP Analytics ingest skipped %d events: %s",
                response.skipped,
                [(e.index, e.error) for e in response.validation_errors],
            )

    def _run(self) -> None:
        """Background worker: flush on the interval or when a batch fills."""
        timeout = self.flush_interval / 1000 if self.flush_interval else None
        while not self._stopped.is_set():
            self._wake.wait(timeout)
            self._wake.clear()
            if self._stopped.is_set():
                break
            self.flush()
            if self.pending >= self.batch_size:
                self._wake.set()


def _error_message(response) -> str:
    """Pull the API's error message out of a failed response."""
    message = None
    try:
        data = response.json()
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            message = data["error"].get("message")
    except ValueError:
        message = (response.text or "")[:200] or None
    return message or f"HTTP {response.status_code}: {response.reason_phrase}"
