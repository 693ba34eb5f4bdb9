"""Task operations routed to the server or to local storage."""

from __future__ import annotations

from dataclasses import dataclass, field

from studymate.api_client import ApiError, StudyMateClient
from studymate.connectivity import ConnectionMonitor
from studymate.logging_config import get_logger
from studymate.storage import LocalFallbackStore, is_local_id

log = get_logger(__name__)

_BOOKKEEPING = ("id", "isLocal", "needsSync", "createdAt", "updatedAt")


def _domain_fields(task: dict) -> dict:
    """Strip client bookkeeping before sending a record to the server."""
    return {k: v for k, v in task.items() if k not in _BOOKKEEPING}


def _cached(record: dict) -> dict:
    return {**record, "isLocal": False, "needsSync": False}


@dataclass
class SyncResult:
    synced: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class TaskService:
    """Serves tasks from the server when it is reachable, else from the store.

    Demo mode always routes to the store. Changes made locally are flagged
    (``isLocal`` / ``needsSync``), deletions of server tasks are queued, and
    both are pushed by ``sync_pending()``.
    """

    def __init__(self, store: LocalFallbackStore, monitor: ConnectionMonitor,
                 client: StudyMateClient):
        self.store = store
        self.monitor = monitor
        self.client = client

    @property
    def uses_local_data(self) -> bool:
        return self.store.is_demo_mode() or not self.monitor.get_status()["is_online"]

    async def list_tasks(self) -> list[dict]:
        if self.uses_local_data:
            return self.store.list_tasks()
        try:
            remote = await self.client.list_tasks()
        except ApiError as e:
            log.warning("Falling back to cached tasks: %s", e)
            return self.store.list_tasks()

        # Unsynced local edits win over the server copy until sync_pending() runs
        unsynced = {t.get("id"): t for t in self.store.list_unsynced()}
        deleted = set(self.store.list_pending_deletes())
        remote = [t for t in remote if t.get("id") not in deleted]
        remote_ids = {t.get("id") for t in remote}
        tasks = [unsynced.get(t.get("id")) or _cached(t) for t in remote]
        tasks += [t for task_id, t in unsynced.items() if task_id not in remote_ids]
        self.store.save_tasks(tasks)
        return tasks

    async def create_task(self, task: dict) -> dict:
        if not self.uses_local_data:
            try:
                created = await self.client.create_task(_domain_fields(task))
                return self.store.add_task(_cached(created))
            except ApiError as e:
                log.warning("Create failed on server, saving locally: %s", e)
        return self.store.add_task({**task, "isLocal": True})

    async def update_task(self, task_id: str, updates: dict) -> dict | None:
        if not self.uses_local_data and not is_local_id(task_id):
            try:
                updated = await self.client.update_task(task_id, updates)
            except ApiError as e:
                log.warning("Update of %s failed on server, saving locally: %s", task_id, e)
            else:
                if self.store.get_task(task_id) is None:
                    return self.store.add_task(_cached(updated))
                self.store.update_task(task_id, _domain_fields(updated))
                self.store.mark_synced(task_id)
                return self.store.get_task(task_id)

        record = self.store.update_task(task_id, updates)
        if record is not None:
            self.store.mark_for_sync(task_id)
            record = self.store.get_task(task_id)
        return record

    async def delete_task(self, task_id: str) -> bool:
        if is_local_id(task_id):
            return self.store.delete_task(task_id)
        if not self.uses_local_data:
            try:
                await self.client.delete_task(task_id)
            except ApiError as e:
                if e.status_code != 404:
                    log.warning("Delete of %s failed on server: %s", task_id, e)
                    return False
            self.store.delete_task(task_id)
            return True

        removed = self.store.delete_task(task_id)
        if removed:
            self.store.queue_delete(task_id)
        return removed

    async def sync_pending(self) -> SyncResult:
        """Push locally created, modified or deleted tasks to the server."""
        result = SyncResult()
        if self.uses_local_data:
            log.info("Skipping sync: %s", "demo mode" if self.store.is_demo_mode() else "server offline")
            return result

        unsynced = self.store.list_unsynced()
        deletes = self.store.list_pending_deletes()
        if not unsynced and not deletes:
            return result

        log.info("Syncing %d task(s) and %d deletion(s) with the server", len(unsynced), len(deletes))
        for task in unsynced:
            task_id = task["id"]
            try:
                if task.get("isLocal") or is_local_id(task_id):
                    created = await self.client.create_task(_domain_fields(task))
                    self.store.replace_task(task_id, _cached(created))
                else:
                    await self.client.update_task(task_id, _domain_fields(task))
                    self.store.mark_synced(task_id)
                result.synced += 1
            except ApiError as e:
                log.warning("Failed to sync task %s: %s", task_id, e)
                result.failed += 1
                result.errors.append(f"{task_id}: {e}")

        for task_id in deletes:
            try:
                await self.client.delete_task(task_id)
            except ApiError as e:
                if e.status_code != 404:
                    log.warning("Failed to sync deletion of %s: %s", task_id, e)
                    result.failed += 1
                    result.errors.append(f"{task_id}: {e}")
                    continue
            self.store.clear_pending_delete(task_id)
            result.synced += 1

        self.store.set_last_sync_time()
        log.info("Sync finished: %d synced, %d failed", result.synced, result.failed)
        return result
