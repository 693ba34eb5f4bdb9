"""Server connectivity monitor with periodic probing and subscriber broadcasts."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

from studymate.health import DEFAULT_TIMEOUT, HealthProbe
from studymate.logging_config import get_logger
from studymate.retry import BASE_DELAY, MAX_DELAY, get_backoff_delay
from studymate.storage import LocalFallbackStore

log = get_logger(__name__)

DEFAULT_CHECK_INTERVAL = 30.0
DEFAULT_MAX_RETRIES = 5

StatusHandler = Callable[[dict], None]


@dataclass
class ConnectionStatus:
    is_online: bool = False
    is_checking: bool = False
    retry_count: int = 0
    last_check: str | None = None


class ConnectionMonitor:
    """Single source of truth for "can we reach the StudyMate server".

    Construct one per process, call ``initialize()`` once the event loop is
    running and ``close()`` (or ``cleanup()``) on shutdown. Subscribers are
    plain callables receiving a status dict; they run synchronously on the
    event loop, in registration order, and an exception in one of them is
    logged without affecting the others.
    """

    def __init__(
        self,
        store: LocalFallbackStore,
        probe: Callable[[], Awaitable[bool]] | None = None,
        health_url: str = "http://localhost:5001/health",
        timeout: float = DEFAULT_TIMEOUT,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        max_delay: float = MAX_DELAY,
        event_log=None,
    ):
        self.store = store
        self.health_url = health_url
        self.check_interval = check_interval
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.event_log = event_log

        self._owns_probe = probe is None
        self._probe = probe or HealthProbe(health_url, timeout=timeout)

        self._status = ConnectionStatus()
        self._subscribers: dict[StatusHandler, None] = {}  # ordered set
        self._periodic_task: asyncio.Task | None = None
        self._probe_tasks: set[asyncio.Task] = set()
        self._in_flight = 0
        self._probe_seq = 0
        self._applied_seq = 0

    # -- Subscribers --

    def subscribe(self, handler: StatusHandler) -> StatusHandler:
        """Register ``handler`` and call it right away with the current status."""
        self._subscribers[handler] = None
        self._deliver(handler, self._snapshot())
        return handler

    def unsubscribe(self, handler: StatusHandler) -> None:
        self._subscribers.pop(handler, None)

    def _snapshot(self) -> dict:
        return asdict(self._status)

    @staticmethod
    def _deliver(handler: StatusHandler, snapshot: dict) -> None:
        try:
            handler(snapshot)
        except Exception:
            log.exception("Error in connection status subscriber %r", handler)

    def _broadcast(self) -> None:
        snapshot = self._snapshot()
        for handler in list(self._subscribers):
            self._deliver(handler, dict(snapshot))

    def _record(self, event_type: str, **data) -> None:
        if self.event_log is not None:
            self.event_log.record(event_type, **data)

    # -- Probing --

    async def check_connection(self, force: bool = False) -> bool:
        """Probe the server once and return whether it is reachable.

        A non-forced call while another probe is in flight returns the last
        known state without touching the network. Probe failures of any kind
        count as "offline"; nothing is raised to the caller.
        """
        if self._status.is_checking and not force:
            return self._status.is_online

        self._probe_seq += 1
        seq = self._probe_seq
        self._in_flight += 1
        self._status.is_checking = True
        self._status.last_check = datetime.now(timezone.utc).isoformat()
        self._record("HEALTH_CHECK_START", probe=seq)
        self._broadcast()

        try:
            log.debug("Checking server connection (probe #%d)...", seq)
            try:
                healthy = bool(await self._probe())
            except Exception as e:
                log.warning("Connection probe #%d raised: %s", seq, e)
                healthy = False

            if seq < self._applied_seq:
                log.debug("Discarding stale result of probe #%d", seq)
            else:
                self._applied_seq = seq
                self._apply_result(healthy, seq)
        finally:
            self._in_flight -= 1
            self._status.is_checking = self._in_flight > 0
            self._broadcast()

        return self._status.is_online

    def _apply_result(self, healthy: bool, seq: int) -> None:
        status = self._status
        if healthy:
            was_online = status.is_online
            status.is_online = True
            status.retry_count = 0
            log.info("Server connection successful")
            self._record("HEALTH_CHECK_SUCCESS", probe=seq)
            if not was_online and self.store.is_demo_mode():
                log.info("Server reconnected while in demo mode - data sync available")
        else:
            status.is_online = False
            status.retry_count = min(status.retry_count + 1, self.max_retries)
            log.warning(
                "Server connection failed (attempt %d/%d)",
                status.retry_count, self.max_retries,
            )
            self._record("HEALTH_CHECK_FAILED", probe=seq, retry_count=status.retry_count)
            if status.retry_count >= self.max_retries:
                log.warning("Max retry attempts reached - consider enabling demo mode")
                self._record("MAX_RETRIES_REACHED", max_retries=self.max_retries)

        self.store.set_server_status({
            "is_online": status.is_online,
            "retry_count": status.retry_count,
            "last_check": status.last_check,
        })

    def get_backoff_delay(self, retry_count: int | None = None) -> float:
        """Seconds to wait before a manual retry, based on consecutive failures."""
        if retry_count is None:
            retry_count = self._status.retry_count
        return get_backoff_delay(retry_count, self.base_delay, self.max_delay)

    # -- Scheduling --

    def _spawn_check(self) -> None:
        task = asyncio.get_running_loop().create_task(self.check_connection())
        self._probe_tasks.add(task)
        task.add_done_callback(self._probe_tasks.discard)

    async def _periodic_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self._spawn_check()

    def start_periodic_checks(self, interval: float | None = None) -> None:
        """(Re)start periodic probing; one probe is triggered right away.

        Must be called from a running event loop.
        """
        if interval is None:
            interval = self.check_interval
        if self.is_running:
            log.info("Restarting periodic connection checks")
        self.stop_periodic_checks()

        log.info("Starting periodic connection checks every %.1fs", interval)
        self._spawn_check()
        self._periodic_task = asyncio.get_running_loop().create_task(
            self._periodic_loop(interval)
        )
        self._record("PERIODIC_CHECKS_STARTED", interval=interval)

    def stop_periodic_checks(self) -> None:
        """Cancel the schedule. Probes already in flight still complete."""
        task, self._periodic_task = self._periodic_task, None
        if task is not None:
            task.cancel()
            log.info("Stopped periodic connection checks")
            self._record("PERIODIC_CHECKS_STOPPED")

    @property
    def is_running(self) -> bool:
        return self._periodic_task is not None and not self._periodic_task.done()

    # -- Demo mode --

    def enable_demo_mode(self) -> None:
        self.store.set_demo_mode(True)
        log.info("Demo mode enabled - using local storage for data")
        self._record("DEMO_MODE_ENABLED")

    def disable_demo_mode(self) -> None:
        self.store.set_demo_mode(False)
        log.info("Demo mode disabled - using the server for data")
        self._record("DEMO_MODE_DISABLED")

    # -- Lifecycle --

    def get_status(self) -> dict:
        return {
            **self._snapshot(),
            "max_retries": self.max_retries,
            "is_demo_mode": self.store.is_demo_mode(),
        }

    async def initialize(self) -> None:
        """Seed status from storage and start periodic checks."""
        log.info("Initializing connection monitor...")
        stored = self.store.get_server_status()
        self._status.is_online = bool(stored.get("is_online", False))
        retry_count = stored.get("retry_count")
        if not isinstance(retry_count, int) or isinstance(retry_count, bool):
            retry_count = 0
        self._status.retry_count = max(0, min(retry_count, self.max_retries))
        self._status.last_check = stored.get("last_check")

        self.start_periodic_checks(self.check_interval)
        log.info("Connection monitor initialized")

    def cleanup(self) -> None:
        self.stop_periodic_checks()
        self._subscribers.clear()
        log.info("Connection monitor cleaned up")

    async def close(self) -> None:
        """``cleanup()``, then cancel outstanding probes and release the HTTP client."""
        self.cleanup()
        pending = list(self._probe_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._owns_probe:
            await self._probe.aclose()
