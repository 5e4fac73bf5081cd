"""Admin endpoints: Supabase sync trigger and MySQL health check."""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..models import ErrorResponse, PingDetails, PingResponse, SyncResponse, SyncResultModel
from ...config import SyncSettings
from ...models.migration import SyncOptions
from ...orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()

SYNC_DISABLED_MESSAGE = "Sync disabled. Set ALLOW_SYNC=1 to enable the Supabase sync endpoint."


def get_settings() -> SyncSettings:
    return SyncSettings.from_env()


def get_orchestrator(settings: SyncSettings = Depends(get_settings)) -> SyncOrchestrator:
    return SyncOrchestrator(settings)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@router.post(
    "/supabase/sync",
    response_model=SyncResponse,
    responses={403: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def run_supabase_sync(
    dry_run: bool = Query(False, alias="dryRun"),
    settings: SyncSettings = Depends(get_settings),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Sync users and profiles from Supabase into MySQL."""
    if not settings.allow_sync:
        logger.warning("Rejected sync request: ALLOW_SYNC is not enabled")
        return _error(403, SYNC_DISABLED_MESSAGE)

    try:
        summary = orchestrator.run_full_sync(SyncOptions(dry_run=dry_run))
    except Exception as e:
        logger.exception(f"Supabase sync failed: {e}")
        return _error(500, str(e))

    results = {name: SyncResultModel(**r.to_dict()) for name, r in summary.results.items()}
    return SyncResponse(
        dry_run=summary.dry_run,
        timestamp=summary.timestamp.isoformat(),
        **results,
    )


@router.get(
    "/mysql/ping",
    response_model=PingResponse,
    responses={503: {"model": ErrorResponse}},
)
def ping_mysql(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Report MySQL server version and table count."""
    result = orchestrator.ping()
    if not result.get("ok"):
        return _error(503, result.get("error") or "MySQL ping failed")
    return PingResponse(details=PingDetails(**result["details"]))
