"""
FastAPI Main Application
Wires the market crash lifecycle services and owns their lifetime
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crash_console.api.routes import health, market_crash
from crash_console.config import settings
from crash_console.core.logging import setup_logging
from crash_console.domain.services.config_engine import ConfigEngine
from crash_console.domain.services.crash_workflow import BranchCrashWorkflow
from crash_console.infrastructure.pricing_api import (
    BranchDirectoryClient,
    PricingApiClient,
    PricingServiceClient,
)
from crash_console.realtime.crash_broadcast import GlobalCrashBroadcast
from crash_console.realtime.scheduler import ApschedulerScheduler
from crash_console.services.notification_service import (
    NotificationFeed,
    build_notification_sink,
)

setup_logging(
    level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE,
    max_bytes=settings.LOG_MAX_BYTES,
    backup_count=settings.LOG_BACKUP_COUNT,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Handles startup and shutdown of all services
    """
    logger.info("=" * 60)
    logger.info("Starting market crash console")
    logger.info("=" * 60)

    # 1. Configuration
    config_engine = ConfigEngine(Path(settings.CONFIG_DIR))
    config_engine.load_all()
    options = config_engine.crash_options
    logger.info(
        "Crash options loaded: intensities=%s durations=%s",
        sorted(options.allowed_intensities),
        sorted(options.allowed_durations),
    )

    # 2. Infrastructure
    api_client = PricingApiClient(
        base_url=settings.PRICING_API_BASE_URL,
        token=settings.PRICING_API_TOKEN,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )
    directory = BranchDirectoryClient(api_client)
    pricing = PricingServiceClient(api_client)
    feed = NotificationFeed(maxlen=settings.NOTIFICATION_FEED_SIZE)
    notifier = build_notification_sink(
        feed,
        telegram_enabled=settings.TELEGRAM_ENABLED,
        telegram_token=settings.TELEGRAM_BOT_TOKEN,
        telegram_chat_id=settings.TELEGRAM_CHAT_ID,
    )

    # 3. Process-scoped broadcast (polls until shutdown)
    scheduler = ApschedulerScheduler()
    scheduler.start()
    broadcast = GlobalCrashBroadcast(
        directory,
        scheduler,
        poll_interval_seconds=settings.CRASH_POLL_INTERVAL_SECONDS,
    )
    await broadcast.init()

    # 4. Operator workflow
    workflow = BranchCrashWorkflow(
        directory=directory,
        pricing=pricing,
        broadcast=broadcast,
        notifier=notifier,
        scheduler=scheduler,
        options=options,
        tick_seconds=settings.CRASH_TICK_SECONDS,
        expiry_recheck_seconds=settings.CRASH_EXPIRY_RECHECK_SECONDS,
    )

    app.state.broadcast = broadcast
    app.state.workflow = workflow
    app.state.notification_feed = feed
    logger.info("Market crash console ready (backend: %s)", settings.PRICING_API_BASE_URL)

    yield

    logger.info("Shutting down market crash console...")
    await workflow.dispose()
    await broadcast.dispose()
    scheduler.shutdown()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Market Crash Console",
    description="Market crash lifecycle management for venue branches",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(market_crash.router, prefix="/api/v1/market-crash", tags=["Market Crash"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("crash_console.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
