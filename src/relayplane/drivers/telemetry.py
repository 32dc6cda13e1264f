"""Telemetry reporter implementations."""

import logging
import queue
import threading

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from relayplane.env import DEFAULT_TELEMETRY_ENDPOINT
from relayplane.protocols.telemetry import TelemetryBatch, TelemetryRun

logger = logging.getLogger(__name__)


class NullReporter:
    """Reporter that discards all runs.

    Used when telemetry is disabled.
    """

    def enqueue(self, run: TelemetryRun) -> None:
        pass

    def flush(self) -> None:
        pass

    def shutdown(self) -> None:
        pass


class MemoryReporter:
    """Reporter that keeps runs in memory.

    Useful for testing - allows inspection of enqueued records.
    """

    def __init__(self) -> None:
        self.runs: list[TelemetryRun] = []
        self.flushed = 0

    def enqueue(self, run: TelemetryRun) -> None:
        self.runs.append(run)

    def flush(self) -> None:
        self.flushed += 1

    def shutdown(self) -> None:
        self.flush()

    def clear(self) -> None:
        self.runs.clear()


class HttpTelemetryReporter:
    """Delivers run records to the telemetry endpoint over HTTP.

    enqueue() only puts the record on a queue. A daemon thread wakes up
    every flush interval, batches everything queued and POSTs it with
    bearer authentication, retrying transport and 5xx failures with
    exponential backoff. Delivery failures are logged and dropped.
    """

    def __init__(
        self,
        api_key: str,
        endpoint: str = DEFAULT_TELEMETRY_ENDPOINT,
        flush_interval_ms: int = 5000,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self.flush_interval = flush_interval_ms / 1000
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._client = client or httpx.Client(timeout=10.0)
        self._queue: queue.Queue[TelemetryRun] = queue.Queue()
        self._send_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the background flush thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._worker, name="relayplane-telemetry", daemon=True
        )
        self._thread.start()

    def _worker(self) -> None:
        while not self._stop.wait(self.flush_interval):
            self.flush()

    def enqueue(self, run: TelemetryRun) -> None:
        self._queue.put(run)

    def _drain(self) -> list[TelemetryRun]:
        runs = []
        while True:
            try:
                runs.append(self._queue.get_nowait())
            except queue.Empty:
                return runs

    def flush(self) -> None:
        """Send everything queued so far as one batch."""
        with self._send_lock:
            runs = self._drain()
            if not runs:
                return
            batch = TelemetryBatch(logs=runs)
            try:
                self._send(batch)
            except httpx.HTTPError as e:
                logger.warning("Dropped %d telemetry run(s): %s", len(runs), e)

    def _send(self, batch: TelemetryBatch) -> None:
        payload = batch.model_dump(mode="json", by_alias=True, exclude_none=True)
        headers = {"Authorization": f"Bearer {self.api_key}"}

        for attempt in Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=10),
            retry=retry_if_exception_type((httpx.TransportError, httpx.HTTPStatusError)),
            reraise=True,
        ):
            with attempt:
                response = self._client.post(self.endpoint, json=payload, headers=headers)
                if response.status_code >= 500:
                    response.raise_for_status()
                if response.status_code >= 400:
                    logger.warning(
                        "Telemetry endpoint rejected batch: %s %s",
                        response.status_code,
                        response.text[:200],
                    )

    def shutdown(self) -> None:
        """Stop the flush thread after a final flush."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.flush_interval + 1)
            self._thread = None
        self.flush()
        self._client.close()
