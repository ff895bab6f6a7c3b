"""
Scheduler for automated account syncs

Uses APScheduler to run the all-accounts sync on a cron expression.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from typing import Optional

from app.connectors.mercado_livre_connector import MercadoLivreConnector
from app.models.base import SessionLocal
from app.config import get_settings
from app.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()


async def run_auto_sync() -> Optional[dict]:
    """Sync every active account (cron: auto_sync_schedule)"""
    from app.services.auto_sync_service import AutoSyncService

    log.info("Starting scheduled auto sync...")
    db = SessionLocal()
    try:
        async with MercadoLivreConnector(settings) as connector:
            run_log = await AutoSyncService(db, connector, settings).sync_all_accounts()
        return {
            "total_accounts": run_log.total_accounts,
            "successful_syncs": run_log.successful_syncs,
            "failed_syncs": run_log.failed_syncs,
            "tokens_renewed": run_log.tokens_renewed,
        }
    except Exception as e:
        log.error(f"Scheduled auto sync error: {str(e)}")
        return None
    finally:
        db.close()


def start_scheduler():
    """Register jobs and start the scheduler"""
    if not settings.enable_scheduler:
        log.info("Scheduler disabled by configuration")
        return

    scheduler.add_job(
        run_auto_sync,
        CronTrigger.from_crontab(settings.auto_sync_schedule),
        id="ml_auto_sync",
        name="Mercado Livre auto sync",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    log.info(f"Scheduler started: auto sync on '{settings.auto_sync_schedule}'")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        log.info("Scheduler stopped")


def get_scheduled_jobs():
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        }
        for job in scheduler.get_jobs()
    ]
