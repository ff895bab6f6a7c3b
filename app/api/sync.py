"""
Data synchronization endpoints
"""
from fastapi import APIRouter, BackgroundTasks, HTTPException, Query
from fastapi.responses import JSONResponse
from typing import Optional

from app.config import get_settings
from app.connectors.mercado_livre_connector import MercadoLivreConnector
from app.models.base import SessionLocal
from app.models.mercado_livre import MLAutoSyncLog
from app.services.ml_store import MLStore
from app.services.sync_orchestrator import SyncOrchestrator, account_locks
from app.utils.helpers import utcnow
from app.utils.logger import log

router = APIRouter(prefix="/sync", tags=["sync"])
settings = get_settings()

# In-memory sync status for background tasks
_sync_status = {}


def _update_sync_status(key: str, status: str, result=None, error=None):
    _sync_status[key] = {
        "status": status,
        "started_at": _sync_status.get(key, {}).get("started_at", utcnow().isoformat()),
        "updated_at": utcnow().isoformat(),
        "result": result,
        "error": error,
    }


async def _run_sync_all():
    """Background task: sync every active account."""
    from app.scheduler import run_auto_sync

    _update_sync_status("all", "running")
    result = await run_auto_sync()
    if result is None:
        _update_sync_status("all", "failed", error="Auto sync failed, see logs")
    else:
        _update_sync_status("all", "completed", result=result)


@router.post("/accounts/{account_id}")
async def sync_account(
    account_id: int,
    timeout: Optional[float] = Query(None, description="Seconds before the run is cancelled"),
):
    """
    Sync one account and return the run summary.

    Responds 401 when the account must be re-authorized and 409 when a run
    for the same account is already in progress.
    """
    if account_locks.is_locked(account_id):
        raise HTTPException(status_code=409, detail=f"Sync already running for account {account_id}")

    db = SessionLocal()
    try:
        account = MLStore(db).get_account(account_id)
        if account is None:
            raise HTTPException(status_code=404, detail=f"Account {account_id} not found")

        _update_sync_status(f"account:{account_id}", "running")
        async with MercadoLivreConnector(settings) as connector:
            summary = await SyncOrchestrator(db, connector, settings).run_locked(
                account, timeout=timeout or settings.sync_timeout_seconds
            )
        _update_sync_status(f"account:{account_id}", summary.status, result=summary.to_dict())
    finally:
        db.close()

    if summary.status == "auth_error":
        return JSONResponse(status_code=401, content=summary.to_dict())
    return summary.to_dict()


@router.post("/all")
async def sync_all_accounts(background_tasks: BackgroundTasks):
    """
    Sync every active account (runs in background to avoid timeout).
    Check progress at GET /sync/progress
    """
    _update_sync_status("all", "started")
    background_tasks.add_task(_run_sync_all)
    return {
        "message": "Sync started in background",
        "check_progress": "/sync/progress",
    }


@router.get("/progress")
async def sync_progress():
    """Status of background and per-account syncs started from this process"""
    return _sync_status


@router.get("/history")
async def sync_history(limit: int = Query(10, ge=1, le=100)):
    """Recent auto sync runs"""
    db = SessionLocal()
    try:
        runs = db.query(MLAutoSyncLog).order_by(MLAutoSyncLog.started_at.desc()).limit(limit).all()
        return [
            {
                "id": run.id,
                "status": run.status,
                "started_at": run.started_at.isoformat() if run.started_at else None,
                "finished_at": run.finished_at.isoformat() if run.finished_at else None,
                "total_accounts": run.total_accounts,
                "successful_syncs": run.successful_syncs,
                "failed_syncs": run.failed_syncs,
                "tokens_renewed": run.tokens_renewed,
                "error_details": run.error_details,
            }
            for run in runs
        ]
    except Exception as e:
        log.error(f"Error loading sync history: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        db.close()
