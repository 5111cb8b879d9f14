"""On-demand reconciliation of already migrated tables."""

from fastapi import APIRouter, HTTPException, Request

from ..models import ReconcileRequest, ReconcileResponse
from ...exceptions import ColumnMismatchError, ReconciliationComputeError
from ...models.schema import parse_table_specs

router = APIRouter()


@router.post("", response_model=ReconcileResponse)
def reconcile_tables(data: ReconcileRequest, request: Request):
    """Compare row counts and column fingerprints of source and target."""
    try:
        identifiers = parse_table_specs(data.tables)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    state = request.app.state
    policy = data.missing_column_policy.value if data.missing_column_policy else None
    orchestrator = state.orchestrator_factory(
        state.config.with_overrides(missing_column_policy=policy)
    )

    reports = []
    for identifier in identifiers:
        try:
            reports.append(orchestrator.reconciler.reconcile(identifier))
        except ColumnMismatchError as e:
            reports.append(e.report)
        except ReconciliationComputeError as e:
            raise HTTPException(status_code=502, detail=str(e))

    return ReconcileResponse(
        reports=[r.to_dict() for r in reports],
        matched=all(r.matched for r in reports),
    )
