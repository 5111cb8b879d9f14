"""Migration submission, status and cancellation endpoints."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request

from ..models import (
    MigrationCreate,
    MigrationListResponse,
    MigrationResponse,
    MigrationStatusEnum,
)
from ..storage import migration_storage
from ...models.schema import parse_table_specs
from ...models.migration import MigrationStatus

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=MigrationResponse, status_code=202)
async def create_migration(data: MigrationCreate, request: Request, background_tasks: BackgroundTasks):
    """Submit a migration; it runs in the background."""
    try:
        parse_table_specs(data.tables)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    migration = migration_storage.create(data)
    background_tasks.add_task(run_migration_task, migration.id, data.overrides(), request.app.state)
    return migration


@router.get("", response_model=MigrationListResponse)
async def list_migrations():
    """List all migrations."""
    migrations = migration_storage.list_all()
    return MigrationListResponse(migrations=migrations, total=len(migrations))


@router.get("/{migration_id}", response_model=MigrationResponse)
async def get_migration(migration_id: str):
    """Get a specific migration."""
    migration = migration_storage.get(migration_id)
    if not migration:
        raise HTTPException(status_code=404, detail="Migration not found")
    return migration


@router.post("/{migration_id}/cancel")
async def cancel_migration(migration_id: str):
    """Request cancellation of a pending or running migration."""
    migration = migration_storage.get(migration_id)
    if not migration:
        raise HTTPException(status_code=404, detail="Migration not found")

    if migration.status not in (MigrationStatusEnum.PENDING, MigrationStatusEnum.RUNNING):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel migration in status: {migration.status.value}"
        )

    migration_storage.cancel_event(migration_id).set()
    return {"status": "cancelling", "migration_id": migration_id}


def run_migration_task(migration_id: str, overrides: Dict[str, Any], state: Any):
    """Background task that runs the orchestrator over the requested tables."""
    migration = migration_storage.get(migration_id)
    if not migration:
        return

    cancel_event = migration_storage.cancel_event(migration_id)
    if cancel_event.is_set():
        migration_storage.update(
            migration_id,
            status=MigrationStatusEnum.CANCELLED,
            completed_at=datetime.now(timezone.utc),
        )
        return

    migration_storage.update(
        migration_id,
        status=MigrationStatusEnum.RUNNING,
        started_at=datetime.now(timezone.utc),
    )

    try:
        config = state.config.with_overrides(name=migration.name, **overrides)
        orchestrator = state.orchestrator_factory(config)
        runs = orchestrator.run_many(parse_table_specs(migration.tables), cancel_event=cancel_event)
    except Exception as e:
        logger.exception(f"Migration {migration_id} failed")
        migration_storage.update(
            migration_id,
            status=MigrationStatusEnum.FAILED,
            error=str(e),
            completed_at=datetime.now(timezone.utc),
        )
        return

    if all(run.succeeded for run in runs):
        status = MigrationStatusEnum.COMPLETED
    elif any(run.status == MigrationStatus.CANCELLED for run in runs):
        status = MigrationStatusEnum.CANCELLED
    else:
        status = MigrationStatusEnum.FAILED

    migration_storage.update(
        migration_id,
        status=status,
        runs=[run.to_dict() for run in runs],
        completed_at=datetime.now(timezone.utc),
    )
