"""
Mercado Livre notification endpoint and OAuth callback
"""
from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from typing import Optional

from app.config import get_settings
from app.connectors.mercado_livre_connector import MercadoLivreConnector
from app.exceptions import AuthError
from app.models.base import SessionLocal
from app.models.mercado_livre import MLWebhookLog
from app.services.token_manager import TokenManager
from app.services.webhook_service import WebhookService
from app.utils.logger import log

router = APIRouter(tags=["webhooks"])
settings = get_settings()


async def process_webhook_log(log_id: int):
    """Background task: apply a logged notification"""
    db = SessionLocal()
    try:
        entry = db.query(MLWebhookLog).filter(MLWebhookLog.id == log_id).first()
        if entry is None:
            return
        async with MercadoLivreConnector(settings) as connector:
            await WebhookService(db, connector, settings).process(entry)
    except Exception as e:
        log.error(f"Webhook background processing error for log {log_id}: {str(e)}")
    finally:
        db.close()


@router.post("/webhooks/mercado-livre", response_class=PlainTextResponse)
async def receive_notification(request: Request, background_tasks: BackgroundTasks):
    """Acknowledge immediately; the notification is processed afterwards"""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    db = SessionLocal()
    try:
        entry = WebhookService(db, None, settings).receive(payload)
        log_id = entry.id
    finally:
        db.close()

    background_tasks.add_task(process_webhook_log, log_id)
    return "OK"


@router.get("/auth/callback")
async def oauth_callback(code: str, redirect_uri: Optional[str] = Query(None)):
    """Finish the OAuth authorization-code flow and store the account"""
    redirect = redirect_uri or settings.ml_redirect_uri
    if not redirect:
        raise HTTPException(status_code=400, detail="redirect_uri is not configured")

    db = SessionLocal()
    try:
        async with MercadoLivreConnector(settings) as connector:
            account = await TokenManager(db, connector, settings).connect_account(code, redirect)
        return {
            "account_id": account.id,
            "ml_user_id": account.ml_user_id,
            "nickname": account.ml_nickname,
            "token_expires_at": account.token_expires_at.isoformat(),
        }
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    finally:
        db.close()
