"""
Fitness Sync Routes

UI boundary of the sync engine:
- GET  /fit/status      - Connection status and latest metrics
- POST /fit/connect     - Start the provider authorization
- POST /fit/disconnect  - Sign out and stop syncing
- POST /fit/sync        - Manual sync of one day
- POST /fit/sync/range  - Sync the last N days
- POST /fit/visibility  - Host page visibility changed
- GET  /fit/body        - Weight measurements
"""

import logging
from datetime import date as date_type, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from fitsync.features.fit import FetchError, UnauthorizedError
from fitsync.features.fit.sync import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Schemas
# =============================================================================

class SyncRequest(BaseModel):
    date: Optional[date_type] = None


class VisibilityRequest(BaseModel):
    visible: bool


# =============================================================================
# Dependencies
# =============================================================================

def get_orchestrator(request: Request) -> SyncOrchestrator:
    """Orchestrator owned by the application lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Fitness sync not available")
    return orchestrator


def _require_connected(orchestrator: SyncOrchestrator) -> None:
    if not orchestrator.is_connected:
        raise HTTPException(
            status_code=409,
            detail=orchestrator.session.error_message or "Fitness provider not connected"
        )


# =============================================================================
# Routes
# =============================================================================

@router.get("/status")
async def fit_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Current connection status, last sync and latest metrics."""
    return orchestrator.session.to_dict()


@router.post("/connect", status_code=202)
async def fit_connect(
    background_tasks: BackgroundTasks,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Start the interactive authorization.

    The handshake can take minutes, so it runs in the background; poll
    /fit/status for the outcome.
    """
    if orchestrator.is_connected:
        return orchestrator.session.to_dict()

    background_tasks.add_task(orchestrator.connect)
    logger.info("Fitness provider connection requested")
    return {"status": "connecting"}


@router.post("/disconnect")
async def fit_disconnect(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    await orchestrator.disconnect()
    return orchestrator.session.to_dict()


@router.post("/sync")
async def fit_sync(
    body: Optional[SyncRequest] = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Manual sync. Never debounced."""
    _require_connected(orchestrator)

    result = await orchestrator.sync_now(body.date if body else None)
    return {
        "result": result.to_dict() if result else None,
        "session": orchestrator.session.to_dict(),
    }


@router.post("/sync/range")
async def fit_sync_range(
    days: int = Query(default=7, ge=1, le=90),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    _require_connected(orchestrator)

    results = await orchestrator.sync_range(days)
    return {
        "results": [r.to_dict() for r in results],
        "session": orchestrator.session.to_dict(),
    }


@router.post("/visibility")
async def fit_visibility(
    body: VisibilityRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Foreground signal from the host page; triggers a debounced sync."""
    task = orchestrator.notify_visibility(body.visible)
    return {"triggered": task is not None}


@router.get("/body")
async def fit_body_measurements(
    days: int = Query(default=30, ge=1, le=365),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Weight readings for the last N days."""
    _require_connected(orchestrator)

    end = datetime.now().astimezone()
    start = datetime.combine(end.date() - timedelta(days=days), time.min, tzinfo=end.tzinfo)
    try:
        measurements = await orchestrator.data_client.fetch_body_measurements(start, end)
    except UnauthorizedError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except FetchError as e:
        logger.warning(f"Body measurements fetch failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "measurements": [
            {"date": m.date.isoformat(), "weight_kg": m.weight_kg}
            for m in measurements
        ]
    }
