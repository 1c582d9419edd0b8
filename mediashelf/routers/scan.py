"""API endpoints for scanning operations."""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException

from ..database import get_session_maker
from ..services.orchestrator import ScanOrchestrator, ScanProgress
from ..services.ratings import RatingsStore
from ..services.storage import LibraryStore
from ..services.tmdb import TMDBService
from .settings import get_tmdb_api_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scan", tags=["scan"])

# Global scan status
_scan_status = {
    "type": None,
    "stage": "",
    "message": "",
    "done": False,
    "error": None,
    "result": None,
}

_orchestrator: Optional[ScanOrchestrator] = None


def get_orchestrator() -> ScanOrchestrator:
    """Get or create the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        session_maker = get_session_maker()
        _orchestrator = ScanOrchestrator(
            store=LibraryStore(session_maker),
            gateway=TMDBService(),
            ratings=RatingsStore(session_maker),
        )
    return _orchestrator


def sync_api_key(orchestrator: ScanOrchestrator) -> None:
    """Pick up a key saved through the settings page."""
    db = get_session_maker()()
    try:
        orchestrator.gateway.api_key = get_tmdb_api_key(db)
    finally:
        db.close()


def update_progress(progress: ScanProgress) -> None:
    """Callback to update scan status."""
    _scan_status["stage"] = progress.stage
    _scan_status["message"] = progress.detail
    _scan_status["done"] = progress.done
    _scan_status["error"] = progress.error


async def run_scan(force_refresh: bool):
    """Background task for a library scan."""
    orchestrator = get_orchestrator()
    sync_api_key(orchestrator)
    try:
        result = await orchestrator.start_scan(force_refresh=force_refresh, on_progress=update_progress)
        if result is not None:
            _scan_status["result"] = result.to_dict()
    except Exception as e:
        logger.error(f"Scan failed: {e}", exc_info=True)


def _start(background_tasks: BackgroundTasks, force_refresh: bool) -> None:
    if get_orchestrator().is_scanning():
        raise HTTPException(status_code=400, detail="Scan already in progress")

    _scan_status.update({
        "type": "full" if force_refresh else "incremental",
        "stage": "queued",
        "message": "Starting scan...",
        "done": False,
        "error": None,
        "result": None,
    })
    background_tasks.add_task(run_scan, force_refresh)


@router.post("")
async def trigger_scan(background_tasks: BackgroundTasks):
    """Trigger an incremental scan of every enabled source."""
    _start(background_tasks, force_refresh=False)
    return {"message": "Scan started", "status": "running"}


@router.post("/full")
async def trigger_full_scan(background_tasks: BackgroundTasks):
    """Trigger a scan that also re-fetches metadata for the whole library."""
    _start(background_tasks, force_refresh=True)
    return {"message": "Full scan started", "status": "running"}


@router.get("/status")
async def get_scan_status():
    """Get current scan status."""
    return {"running": get_orchestrator().is_scanning(), **_scan_status}
