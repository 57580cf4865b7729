"""
Forwards tracker events to the game API.

Posting happens on a worker thread so a slow or unreachable game server
never stalls the detection loop. Failures are logged and dropped.
"""
import queue
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

import httpx

from autoscore.core.dart_tracker import DartDetection

logger = logging.getLogger(__name__)

MULTIPLIER_ZONES = {1: "single", 2: "double", 3: "triple"}


def dart_zone(dart: DartDetection) -> str:
    if dart.points == 0:
        return "miss"
    if dart.segment == 50:
        return "inner_bull"
    if dart.segment == 25:
        return "outer_bull"
    return MULTIPLIER_ZONES.get(dart.multiplier, "single")


def dart_payload(dart: DartDetection, dart_number: int) -> Dict[str, Any]:
    return {
        "dartNumber": dart_number,
        "segment": dart.segment,
        "multiplier": dart.multiplier,
        "score": dart.points,
        "zone": dart_zone(dart),
        "confidence": round(dart.confidence, 3),
        "xPx": dart.dart_position.x,
        "yPx": dart.dart_position.y,
    }


class GameApiNotifier:
    """Sends dart-detected and turn-complete events for one board."""

    def __init__(
        self,
        base_url: str,
        board_id: str = "default",
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.board_id = board_id
        self._client = httpx.Client(timeout=timeout, transport=transport)
        self._queue: "queue.Queue[Optional[Tuple[str, Dict[str, Any]]]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _url(self, event: str) -> str:
        return f"{self.base_url}/api/games/board/{self.board_id}/{event}"

    def post(self, event: str, payload: Dict[str, Any]) -> bool:
        """POST one event synchronously. Returns True on a 2xx response."""
        url = self._url(event)
        try:
            response = self._client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"[NOTIFY] Failed to reach game API at {url}: {e}")
            return False

        if response.is_success:
            logger.info(f"[NOTIFY] Sent {event} to game API")
            return True

        logger.warning(f"[NOTIFY] Game API returned {response.status_code} for {event}: {response.text}")
        return False

    def send_dart_detected(self, dart: DartDetection, dart_number: int) -> bool:
        return self.post("dart-detected", dart_payload(dart, dart_number))

    def send_turn_complete(self, darts: List[DartDetection]) -> bool:
        return self.post("turn-complete", {
            "darts": [dart_payload(d, i) for i, d in enumerate(darts, start=1)],
            "total": sum(d.points for d in darts),
        })

    # Queued variants, safe to call from tracker callbacks

    def dart_detected(self, dart: DartDetection, dart_number: int) -> None:
        self._enqueue("dart-detected", dart_payload(dart, dart_number))

    def turn_complete(self, darts: List[DartDetection]) -> None:
        self._enqueue("turn-complete", {
            "darts": [dart_payload(d, i) for i, d in enumerate(darts, start=1)],
            "total": sum(d.points for d in darts),
        })

    def _enqueue(self, event: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(target=self._drain, name="game-api-notifier", daemon=True)
                self._worker.start()
        self._queue.put((event, payload))

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                event, payload = item
                self.post(event, payload)
            finally:
                self._queue.task_done()

    def flush(self) -> None:
        """Block until every queued event has been attempted."""
        self._queue.join()

    def close(self) -> None:
        with self._lock:
            worker = self._worker
            self._worker = None
        if worker is not None and worker.is_alive():
            self._queue.put(None)
            worker.join(timeout=5.0)
        self._client.close()
