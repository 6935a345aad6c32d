import logging
import secrets
from typing import Optional
from fastapi import APIRouter, Header, HTTPException, Request
from app.schemas.telegram import Update

logger = logging.getLogger("telegram_controller")

router = APIRouter(prefix="/telegram", tags=["telegram"])

@router.post("/webhook")
async def telegram_webhook(
    update: Update,
    request: Request,
    x_telegram_bot_api_secret_token: Optional[str] = Header(None)
):
    expected = getattr(request.app.state, "webhook_secret", None)
    if expected and not secrets.compare_digest(x_telegram_bot_api_secret_token or "", expected):
        logger.warning(f"Rejected webhook update {update.update_id} with invalid secret token")
        raise HTTPException(status_code=403, detail="Invalid secret token")

    bot_service = getattr(request.app.state, "bot_service", None)
    if bot_service is None:
        raise HTTPException(status_code=503, detail="Bot is not initialized")

    # Telegram retries when the webhook is slow, so the update is handled in the background
    bot_service.schedule(update)
    return {"ok": True}
