"""
Health Reporter and /health Endpoint

Liveness for the processor is not "is the process up". A process whose poll
loop has died, or whose queue is unreachable, is up but useless.

HEALTH MODEL:
- last_successful_poll: time of the last receive without a queue error
  (messages failing individually do not matter here)
- circuit_state: "closed" or "open"
- healthy = (now - last_successful_poll < staleness window) and circuit closed
- The window starts when the poll loop starts, so a slow first long poll
  does not report unhealthy; a loop that never starts stays unhealthy

A poll loop that crashed stops updating last_successful_poll, so the
endpoint goes unhealthy after the staleness window (default 120s) even
though this HTTP server keeps answering on its own thread.

ENDPOINT:
    GET /health  -> 200 {"healthy": true, ...}
                 -> 503 {"healthy": false, ...}
    anything else -> 404

Whether an orchestrator restarts on "circuit open" (restarting does not fix
an unreachable dependency) is a deployment decision; the snapshot exposes
circuit_state so it can tell the cases apart.
"""

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Optional

from src.order_processor.circuit_breaker import CircuitState
from src.order_processor.observers import ConsumerObserver
from src.order_processor.sqs_queue import QueueMessage

logger = logging.getLogger(__name__)


@dataclass
class HealthSnapshot:
    healthy: bool
    circuit_state: str
    last_poll: Optional[float]
    total_processed: int

    def to_dict(self) -> dict:
        return asdict(self)


class HealthReporter(ConsumerObserver):
    """
    Tracks poll liveness and circuit state from consumer callbacks.

    Attributes:
        staleness_seconds: Max age of the last successful poll
        last_successful_poll: Epoch seconds of the last successful poll, or None
        total_processed: Orders stored since start
    """

    def __init__(self, staleness_seconds: float = 120.0, clock: Callable[[], float] = time.time):
        self.staleness_seconds = staleness_seconds
        self._clock = clock
        self.last_successful_poll: Optional[float] = None
        self.total_processed = 0
        self.circuit_open = False
        self._lock = threading.Lock()

    def on_start(self) -> None:
        # Staleness window starts with the loop, not with the first long poll
        if self.last_successful_poll is None:
            self.last_successful_poll = self._clock()

    def on_poll_success(self, message_count: int) -> None:
        self.last_successful_poll = self._clock()

    def on_circuit_state_change(self, is_open: bool) -> None:
        self.circuit_open = is_open

    def on_message_processed(self, message: QueueMessage) -> None:
        # Worker threads call this concurrently
        with self._lock:
            self.total_processed += 1

    def snapshot(self) -> HealthSnapshot:
        last_poll = self.last_successful_poll
        fresh = last_poll is not None and (self._clock() - last_poll) < self.staleness_seconds
        circuit_open = self.circuit_open
        return HealthSnapshot(
            healthy=fresh and not circuit_open,
            circuit_state=(CircuitState.OPEN if circuit_open else CircuitState.CLOSED).value,
            last_poll=last_poll,
            total_processed=self.total_processed,
        )


class _HealthRequestHandler(BaseHTTPRequestHandler):
    """Serves GET /health from the reporter attached to the server."""

    def do_GET(self):
        if self.path.split("?", 1)[0] != "/health":
            self._send_json(404, {"error": "not found"})
            return

        snapshot = self.server.reporter.snapshot()
        self._send_json(200 if snapshot.healthy else 503, snapshot.to_dict())

    def _send_json(self, status: int, payload: dict) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        # Probes hit this every few seconds; keep them out of INFO logs
        logger.debug("Health request: " + format % args)


class HealthServer:
    """
    Minimal HTTP server for the health probe, on a daemon thread.

    Args:
        reporter: HealthReporter to read snapshots from
        host: Bind address
        port: Bind port (0 picks a free port)
    """

    def __init__(self, reporter: HealthReporter, host: str = "0.0.0.0", port: int = 8080):
        self.reporter = reporter
        self._server = ThreadingHTTPServer((host, port), _HealthRequestHandler)
        self._server.daemon_threads = True
        self._server.reporter = reporter
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="health-server", daemon=True
        )
        self._thread.start()
        logger.info("Health server running", extra={"port": self.port, "path": "/health"})

    def stop(self) -> None:
        # shutdown() blocks until serve_forever exits, so only call it once started
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join(timeout=5)
        self._server.server_close()
