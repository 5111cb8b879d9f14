"""In-memory storage for migration requests and their runs."""

import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .models import MigrationCreate, MigrationResponse, MigrationStatusEnum


class MigrationStorage:
    """Thread-safe store of submitted migrations; background tasks update it."""

    def __init__(self):
        self._migrations: Dict[str, MigrationResponse] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def create(self, data: MigrationCreate) -> MigrationResponse:
        migration = MigrationResponse(
            id=str(uuid.uuid4()),
            name=data.name,
            status=MigrationStatusEnum.PENDING,
            tables=list(data.tables),
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._migrations[migration.id] = migration
            self._cancel_events[migration.id] = threading.Event()
        return migration

    def get(self, migration_id: str) -> Optional[MigrationResponse]:
        with self._lock:
            return self._migrations.get(migration_id)

    def list_all(self) -> List[MigrationResponse]:
        with self._lock:
            return sorted(self._migrations.values(), key=lambda m: m.created_at)

    def cancel_event(self, migration_id: str) -> Optional[threading.Event]:
        with self._lock:
            return self._cancel_events.get(migration_id)

    def update(self, migration_id: str, **fields) -> Optional[MigrationResponse]:
        """Replace fields of a stored migration; returns the new version."""
        with self._lock:
            migration = self._migrations.get(migration_id)
            if migration is None:
                return None
            updated = migration.model_copy(update=fields)
            self._migrations[migration_id] = updated
            return updated

    def clear(self):
        with self._lock:
            self._migrations.clear()
            self._cancel_events.clear()


migration_storage = MigrationStorage()
