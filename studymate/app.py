"""Explicit construction of the StudyMate client components."""

from __future__ import annotations

from dataclasses import dataclass

from studymate.api_client import StudyMateClient
from studymate.connectivity import ConnectionMonitor
from studymate.diagnostics import ConnectionLog
from studymate.storage import DEMO_MODE, LocalFallbackStore
from studymate.task_service import TaskService


@dataclass
class App:
    store: LocalFallbackStore
    event_log: ConnectionLog
    monitor: ConnectionMonitor
    client: StudyMateClient
    tasks: TaskService

    async def aclose(self) -> None:
        await self.monitor.close()
        await self.client.aclose()
        self.store.close()


def build_app(config: dict, probe=None, transport=None) -> App:
    """Wire store, monitor, API client and task service from config.

    ``probe`` and ``transport`` replace the network layer in tests.
    """
    server = config.get("server", {})
    conn = config.get("connection", {})
    storage = config.get("storage", {})

    store = LocalFallbackStore(
        storage.get("path", "~/.local/share/studymate/storage.db"),
        prefix=storage.get("prefix", "studymate_"),
        quota_bytes=storage.get("quota_bytes", 5 * 1024 * 1024),
    )
    if "demo_mode" in config and DEMO_MODE not in store.keys():
        store.set_demo_mode(config["demo_mode"])

    event_log = ConnectionLog(store, config.get("diagnostics", {}).get("max_log_entries", 100))

    base_url = server.get("base_url", "http://localhost:5001").rstrip("/")
    monitor = ConnectionMonitor(
        store,
        probe=probe,
        health_url=f"{base_url}{server.get('health_path', '/health')}",
        timeout=conn.get("timeout", 5.0),
        check_interval=conn.get("check_interval", 30.0),
        max_retries=conn.get("max_retries", 5),
        base_delay=conn.get("base_delay", 1.0),
        max_delay=conn.get("max_delay", 30.0),
        event_log=event_log,
    )
    client = StudyMateClient(
        base_url,
        store,
        api_prefix=server.get("api_prefix", "/api"),
        timeout=server.get("request_timeout", 10.0),
        max_retries=config.get("api", {}).get("max_retries", 2),
        base_delay=conn.get("base_delay", 1.0),
        max_delay=conn.get("max_delay", 30.0),
        transport=transport,
    )
    return App(
        store=store,
        event_log=event_log,
        monitor=monitor,
        client=client,
        tasks=TaskService(store, monitor, client),
    )
