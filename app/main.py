import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from supabase import create_client
from app.core.config import settings
from app.core.database import engine, Base, SessionLocal
from app.controllers import telegram_controller, user_controller
from app.services.bot_service import BotService
from app.services.openai_service import OpenAIService
from app.services.pipeline_service import RequestPipeline
from app.services.record_service import RecordService
from app.services.storage_service import StorageService
from app.services.telegram_service import TelegramService
from app.models import analysis, user  # noqa: F401  tables for create_all

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger("main")

@asynccontextmanager
async def lifespan(app: FastAPI):
    missing = settings.missing_credentials()
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    Base.metadata.create_all(bind=engine)

    # Wire services, every collaborator is passed in explicitly
    telegram = TelegramService(settings.telegram_bot_token)
    records = RecordService(SessionLocal)
    storage = StorageService(create_client(settings.supabase_url, settings.supabase_key))
    analyzer = OpenAIService(api_key=settings.openai_api_key)
    pipeline = RequestPipeline(records, storage, analyzer, telegram)
    bot = BotService(telegram, pipeline, records)

    app.state.record_service = records
    app.state.bot_service = bot
    app.state.webhook_secret = settings.webhook_secret

    await bot.register_commands()

    polling_task = None
    if settings.telegram_mode == "webhook":
        if not settings.webhook_url:
            raise RuntimeError("WEBHOOK_URL is required when TELEGRAM_MODE=webhook")
        await telegram.set_webhook(f"{settings.webhook_url.rstrip('/')}{settings.api_prefix}/telegram/webhook",
                                   secret_token=settings.webhook_secret)
        logger.info("Telegram webhook registered")
    else:
        # getUpdates is rejected while a webhook is set
        await telegram.delete_webhook()
        polling_task = asyncio.create_task(bot.run_polling())

    logger.info(f"{settings.app_name} started in {settings.telegram_mode} mode")
    try:
        yield
    finally:
        logger.info("Stopping bot...")
        if polling_task is not None:
            polling_task.cancel()
            try:
                await polling_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Polling task ended with an error: {e}", exc_info=True)
        await bot.stop()
        await telegram.close()

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

API_PREFIX = getattr(settings, "api_prefix", "/api/v1")

# Include routers
app.include_router(telegram_controller.router, prefix=API_PREFIX)
app.include_router(user_controller.router, prefix=API_PREFIX)

# Health check endpoint
@app.get("/")
async def root():
    return {
        "message": "AI Health Analyzer Bot API",
        "version": "1.0.0",
        "status": "running",
        "mode": settings.telegram_mode,
        "endpoints": [
            "/api/v1/telegram/webhook",
            "/api/v1/users/{user_id}/history",
            "/docs"
        ]
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug
    )
