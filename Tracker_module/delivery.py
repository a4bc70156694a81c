"""
Delivery of end-of-page and end-of-session reports.

ReliableDelivery tries a normal authenticated request first. When that fails,
or when the process is tearing down and cannot wait for a round trip, the
same payload goes to BeaconDelivery: a fire-and-forget queue that embeds the
credential in the body (no custom headers, text/plain like a browser beacon)
and is flushed by a worker thread and once more at interpreter exit.
"""
import atexit
import json
import logging
import queue
import threading
from typing import Any, Dict, Optional, Tuple

import requests

from .api_client import TrackingApiClient, TrackingApiError

logger = logging.getLogger(__name__)

BEACON_CONTENT_TYPE = "text/plain;charset=UTF-8"

PRIMARY = "primary"
BEACON = "beacon"
FAILED = "failed"


class DeliveryFailure(Exception):
    """A report could not be handed to any transport."""


class HttpDelivery:
    """Confirmable transport: authenticated JSON POST, raises DeliveryFailure on any error."""

    def __init__(self, client: TrackingApiClient):
        self.client = client

    def send(self, path: str, payload: Dict[str, Any], credential: Optional[str]) -> None:
        try:
            self.client.post(path, payload, credential)
        except TrackingApiError as e:
            raise DeliveryFailure(str(e)) from e


class BeaconDelivery:
    """Best-effort transport. enqueue() never blocks and never raises."""

    def __init__(self, client: TrackingApiClient, autostart: bool = True, max_queue: int = 100):
        self.client = client
        self._queue: "queue.Queue[Tuple[str, bytes]]" = queue.Queue(maxsize=max_queue)
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.sent = 0
        self.dropped = 0
        self.autostart = autostart
        atexit.register(self.flush)

    def enqueue(self, path: str, payload: Dict[str, Any]) -> bool:
        try:
            body = json.dumps(payload, default=str).encode("utf-8")
            self._queue.put_nowait((path, body))
        except (TypeError, ValueError, queue.Full) as e:
            self.dropped += 1
            logger.warning(f"Beacon for {path} dropped: {e}")
            return False
        if self.autostart:
            self._ensure_worker()
        return True

    def pending(self) -> int:
        return self._queue.qsize()

    def flush(self) -> int:
        """Send everything queued, synchronously. Returns how many posts went out."""
        flushed = 0
        while True:
            try:
                path, body = self._queue.get_nowait()
            except queue.Empty:
                return flushed
            if self._post(path, body):
                flushed += 1

    def _post(self, path: str, body: bytes) -> bool:
        try:
            self.client.session.post(
                self.client.url(path),
                data=body,
                headers={"Content-Type": BEACON_CONTENT_TYPE},
                timeout=self.client.timeout,
            )
        except requests.exceptions.RequestException as e:
            self.dropped += 1
            logger.warning(f"Beacon POST {path} failed: {e}")
            return False
        self.sent += 1
        return True

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(target=self._drain, name="beacon-delivery", daemon=True)
            self._worker.start()

    def _drain(self) -> None:
        while True:
            try:
                path, body = self._queue.get(timeout=1)
            except queue.Empty:
                return
            self._post(path, body)


class ReliableDelivery:
    def __init__(self, primary: HttpDelivery, fallback: BeaconDelivery):
        self.primary = primary
        self.fallback = fallback

    def deliver(
        self,
        path: str,
        payload: Dict[str, Any],
        credential: Optional[str],
        unloading: bool = False
    ) -> str:
        """
        Send a report, falling back to the beacon transport. Never raises.
        Returns which transport accepted it: "primary", "beacon" or "failed".
        """
        if not unloading:
            try:
                self.primary.send(path, payload, credential)
                return PRIMARY
            except DeliveryFailure as e:
                logger.warning(f"Primary delivery to {path} failed, using beacon: {e}")
            except Exception as e:
                logger.error(f"Unexpected error delivering to {path}, using beacon: {e}", exc_info=True)

        beacon_payload = dict(payload)
        if credential and not beacon_payload.get("token"):
            beacon_payload["token"] = credential
        try:
            if self.fallback.enqueue(path, beacon_payload):
                return BEACON
        except Exception as e:
            logger.error(f"Beacon enqueue for {path} failed: {e}", exc_info=True)
        return FAILED
