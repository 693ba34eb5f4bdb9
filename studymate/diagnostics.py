"""Connection event log and a one-shot diagnostics report."""

from __future__ import annotations

from datetime import datetime, timezone

from studymate.health import CheckResult, HealthReport
from studymate.logging_config import get_logger
from studymate.storage import CONNECTION_LOGS, LocalFallbackStore

log = get_logger(__name__)


class ConnectionLog:
    """Bounded, persisted log of connection events for troubleshooting."""

    def __init__(self, store: LocalFallbackStore, max_entries: int = 100):
        self.store = store
        self.max_entries = max_entries

    def record(self, event_type: str, **data) -> None:
        entries = self.entries()
        entries.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": event_type,
            "data": data,
        })
        overflow = len(entries) - self.max_entries
        if overflow > 0:
            entries = entries[overflow:]
        log.debug("Connection event %s %s", event_type, data)
        self.store.set(CONNECTION_LOGS, entries)

    def entries(self) -> list[dict]:
        entries = self.store.get(CONNECTION_LOGS, [])
        return entries if isinstance(entries, list) else []

    def clear(self) -> None:
        self.store.remove(CONNECTION_LOGS)


def _check_storage(store: LocalFallbackStore) -> CheckResult:
    marker = datetime.now(timezone.utc).isoformat()
    if store.set("diagnostics_probe", marker) and store.get("diagnostics_probe") == marker:
        store.remove("diagnostics_probe")
        return CheckResult("Storage", "pass", f"Writable ({store.db_path})")
    return CheckResult("Storage", "fail", f"Cannot write to {store.db_path}")


async def run_diagnostics(monitor, store: LocalFallbackStore) -> HealthReport:
    """Force a probe and summarize connectivity and local data state."""
    report = HealthReport()

    online = await monitor.check_connection(force=True)
    status = monitor.get_status()
    target = monitor.health_url or "server"
    if online:
        report.checks.append(CheckResult("Server", "pass", f"Reachable at {target}"))
    else:
        report.checks.append(CheckResult("Server", "fail", f"Cannot reach {target}"))

    retries = f"{status['retry_count']}/{status['max_retries']}"
    if status["retry_count"] >= status["max_retries"]:
        report.checks.append(CheckResult("Retries", "warn", f"{retries} failed probes, consider demo mode"))
    else:
        report.checks.append(CheckResult("Retries", "pass", f"{retries} failed probes"))

    if status["is_demo_mode"]:
        report.checks.append(CheckResult("Demo mode", "warn", "Enabled, serving local data"))
    else:
        report.checks.append(CheckResult("Demo mode", "pass", "Disabled"))

    unsynced = len(store.list_unsynced())
    if unsynced:
        report.checks.append(CheckResult("Unsynced tasks", "warn", f"{unsynced} waiting for sync"))
    else:
        report.checks.append(CheckResult("Unsynced tasks", "pass", "None"))

    last_sync = store.get_last_sync_time()
    report.checks.append(
        CheckResult("Last sync", "pass" if last_sync else "warn", last_sync or "Never")
    )

    if store.get_auth_token():
        report.checks.append(CheckResult("Auth token", "pass", "Present"))
    else:
        report.checks.append(CheckResult("Auth token", "warn", "Not logged in"))

    report.checks.append(_check_storage(store))
    return report
