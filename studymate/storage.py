"""Durable key-value storage for offline/demo mode, backed by SQLite."""

from __future__ import annotations

import json
import os
import time
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text, create_engine, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from studymate.logging_config import get_logger

log = get_logger(__name__)

DEFAULT_PREFIX = "studymate_"
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024  # browsers give localStorage ~5 MiB

TASKS = "tasks"
USER_INFO = "user_info"
AUTH_TOKEN = "auth_token"
SERVER_STATUS = "server_status"
LAST_SYNC = "last_sync"
DEMO_MODE = "demo_mode"
CONNECTION_LOGS = "connection_logs"
PENDING_DELETES = "pending_deletes"

LOCAL_ID_PREFIX = "local_"


class Base(DeclarativeBase):
    pass


class StorageEntry(Base):
    __tablename__ = "local_storage"
    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)  # JSON
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_local_id() -> str:
    """Return an id that cannot collide with server-assigned ids."""
    return f"{LOCAL_ID_PREFIX}{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def is_local_id(task_id) -> bool:
    return isinstance(task_id, str) and task_id.startswith(LOCAL_ID_PREFIX)


class LocalFallbackStore:
    """Crash-tolerant key-value store for cached StudyMate data.

    Values are JSON-encoded and keys are namespaced with ``prefix``. No
    storage error escapes this class: reads fall back to the supplied
    default, writes report ``False``.
    """

    def __init__(self, db_path: str, prefix: str = DEFAULT_PREFIX,
                 quota_bytes: int = DEFAULT_QUOTA_BYTES):
        db_path = os.path.expanduser(db_path)
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self.db_path = db_path
        self.prefix = prefix
        self.quota_bytes = quota_bytes
        self.engine = create_engine(f"sqlite:///{db_path}", echo=False)
        self._Session = sessionmaker(bind=self.engine)
        Base.metadata.create_all(self.engine)

    def _session(self) -> Session:
        return self._Session()

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def close(self) -> None:
        self.engine.dispose()

    # -- Generic --

    def get(self, key: str, default=None):
        """Read and decode ``key``; corrupt entries are dropped."""
        full_key = self._key(key)
        try:
            with self._session() as s:
                entry = s.get(StorageEntry, full_key)
                raw = entry.value if entry else None
        except SQLAlchemyError as e:
            log.error("Failed to read storage key '%s': %s", full_key, e)
            return default

        if raw is None:
            return default

        try:
            return json.loads(raw)
        except ValueError as e:
            log.warning("Failed to parse stored data for key '%s': %s", full_key, e)
            self.remove(key)
            return default

    def set(self, key: str, value) -> bool:
        """Encode and write ``value``. Returns False instead of raising."""
        full_key = self._key(key)
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            log.error("Failed to serialize data for key '%s': %s", full_key, e)
            return False

        try:
            with self._session() as s:
                used = (
                    s.query(func.coalesce(func.sum(func.length(StorageEntry.value)), 0))
                    .filter(StorageEntry.key.startswith(self.prefix, autoescape=True))
                    .filter(StorageEntry.key != full_key)
                    .scalar()
                )
                if used + len(serialized) > self.quota_bytes:
                    log.error(
                        "Storage quota exceeded writing '%s' (%d + %d > %d bytes)",
                        full_key, used, len(serialized), self.quota_bytes,
                    )
                    return False

                entry = s.get(StorageEntry, full_key)
                if entry:
                    entry.value = serialized
                    entry.updated_at = datetime.now(timezone.utc)
                else:
                    s.add(StorageEntry(key=full_key, value=serialized))
                s.commit()
            return True
        except SQLAlchemyError as e:
            log.error("Failed to save data for key '%s': %s", full_key, e)
            return False

    def remove(self, key: str) -> None:
        full_key = self._key(key)
        try:
            with self._session() as s:
                s.query(StorageEntry).filter_by(key=full_key).delete()
                s.commit()
        except SQLAlchemyError as e:
            log.error("Failed to remove storage key '%s': %s", full_key, e)

    def keys(self) -> list[str]:
        """List keys managed by this store, without the prefix."""
        try:
            with self._session() as s:
                rows = (
                    s.query(StorageEntry.key)
                    .filter(StorageEntry.key.startswith(self.prefix, autoescape=True))
                    .order_by(StorageEntry.key)
                    .all()
                )
        except SQLAlchemyError as e:
            log.error("Failed to list storage keys: %s", e)
            return []
        return [r.key[len(self.prefix):] for r in rows]

    def clear_all(self) -> None:
        """Remove every key under this store's prefix (logout/reset)."""
        try:
            with self._session() as s:
                removed = (
                    s.query(StorageEntry)
                    .filter(StorageEntry.key.startswith(self.prefix, autoescape=True))
                    .delete(synchronize_session=False)
                )
                s.commit()
            log.info("Cleared %d stored entries", removed)
        except SQLAlchemyError as e:
            log.error("Failed to clear storage: %s", e)

    # -- Tasks --

    def list_tasks(self) -> list[dict]:
        tasks = self.get(TASKS, [])
        if not isinstance(tasks, list):
            log.warning("Stored tasks are not a list, ignoring")
            return []
        return tasks

    def save_tasks(self, tasks: list[dict]) -> bool:
        return self.set(TASKS, tasks)

    def get_task(self, task_id: str) -> dict | None:
        for task in self.list_tasks():
            if task.get("id") == task_id:
                return task
        return None

    def add_task(self, task: dict) -> dict:
        """Append a task, filling in id, timestamps and ``isLocal`` if absent."""
        tasks = self.list_tasks()
        now = _now()
        new_task = {
            **task,
            "id": task.get("id") or make_local_id(),
            "createdAt": task.get("createdAt") or now,
            "updatedAt": now,
            "isLocal": task.get("isLocal", True),
        }
        tasks.append(new_task)
        self.save_tasks(tasks)
        return new_task

    def update_task(self, task_id: str, updates: dict) -> dict | None:
        tasks = self.list_tasks()
        for i, task in enumerate(tasks):
            if task.get("id") == task_id:
                tasks[i] = {**task, **updates, "id": task_id, "updatedAt": _now()}
                self.save_tasks(tasks)
                return tasks[i]
        return None

    def delete_task(self, task_id: str) -> bool:
        tasks = self.list_tasks()
        remaining = [t for t in tasks if t.get("id") != task_id]
        if len(remaining) == len(tasks):
            return False
        self.save_tasks(remaining)
        return True

    def replace_task(self, old_id: str, record: dict) -> bool:
        """Swap a record in place, e.g. a local task for its server copy."""
        tasks = self.list_tasks()
        for i, task in enumerate(tasks):
            if task.get("id") == old_id:
                tasks[i] = record
                return self.save_tasks(tasks)
        return False

    # -- Sync bookkeeping --

    def list_unsynced(self) -> list[dict]:
        return [t for t in self.list_tasks() if t.get("isLocal") or t.get("needsSync")]

    def mark_synced(self, task_id: str) -> bool:
        tasks = self.list_tasks()
        for i, task in enumerate(tasks):
            if task.get("id") == task_id:
                tasks[i] = {**task, "isLocal": False, "needsSync": False}
                return self.save_tasks(tasks)
        return False

    def mark_for_sync(self, task_id: str) -> bool:
        tasks = self.list_tasks()
        for i, task in enumerate(tasks):
            if task.get("id") == task_id:
                tasks[i] = {**task, "needsSync": True, "updatedAt": _now()}
                return self.save_tasks(tasks)
        return False

    def list_pending_deletes(self) -> list[str]:
        ids = self.get(PENDING_DELETES, [])
        return ids if isinstance(ids, list) else []

    def queue_delete(self, task_id: str) -> bool:
        """Remember a server-side task deleted while offline."""
        ids = self.list_pending_deletes()
        if task_id in ids:
            return True
        return self.set(PENDING_DELETES, ids + [task_id])

    def clear_pending_delete(self, task_id: str) -> bool:
        ids = self.list_pending_deletes()
        if task_id not in ids:
            return False
        return self.set(PENDING_DELETES, [i for i in ids if i != task_id])

    # -- Session --

    def get_user_info(self) -> dict | None:
        return self.get(USER_INFO, None)

    def set_user_info(self, user_info: dict | None) -> bool:
        return self.set(USER_INFO, user_info)

    def get_auth_token(self) -> str | None:
        return self.get(AUTH_TOKEN, None)

    def set_auth_token(self, token: str | None) -> bool:
        return self.set(AUTH_TOKEN, token)

    def get_server_status(self) -> dict:
        status = self.get(SERVER_STATUS, None)
        if not isinstance(status, dict):
            return {"is_online": False, "retry_count": 0, "last_check": None}
        return status

    def set_server_status(self, status: dict) -> bool:
        return self.set(SERVER_STATUS, {
            "is_online": bool(status.get("is_online", False)),
            "retry_count": int(status.get("retry_count", 0)),
            "last_check": status.get("last_check"),
        })

    def get_last_sync_time(self) -> str | None:
        return self.get(LAST_SYNC, None)

    def set_last_sync_time(self, timestamp: str | None = None) -> bool:
        return self.set(LAST_SYNC, timestamp or _now())

    def is_demo_mode(self) -> bool:
        return bool(self.get(DEMO_MODE, False))

    def set_demo_mode(self, enabled: bool) -> bool:
        return self.set(DEMO_MODE, bool(enabled))
