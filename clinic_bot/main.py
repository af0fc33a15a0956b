"""
FastAPI Application Entry Point

Serves the Telegram webhook and wires the booking services to it:
schema creation, the ledger, sessions, the daily scheduler and the
conversation engine all come up in the lifespan handler.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from clinic_bot.bot import get_bot, get_dispatcher, shutdown_webhook, startup_webhook, webhook_router
from clinic_bot.bot.transport import TelegramTransport
from clinic_bot.config import settings
from clinic_bot.container import build_container
from clinic_bot.db.session import (
    check_database_connection,
    close_database_connection,
    get_session_factory,
    init_database,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"

logger.info(
    f"{settings.bot_name} for {settings.clinic_name} | tz={settings.clinic_timezone} "
    f"| admins={len(settings.admin_ids)} | db={settings.database_url.split('@')[-1]}"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Bring the clinic services up, then tear them down in reverse.

    A failed webhook registration is logged but does not stop the app;
    the scheduler and /info stay useful while it is fixed.
    """
    await init_database()
    if not await check_database_connection():
        logger.error("❌ Database unreachable at startup")

    container = build_container(settings, get_session_factory(), TelegramTransport(get_bot()))
    container.bind(get_dispatcher())
    container.start()
    app.state.container = container
    logger.info("✅ Booking services started")

    if not await startup_webhook():
        logger.warning("Telegram webhook is not registered; updates will not arrive")

    yield

    logger.info("🛑 Stopping booking services")
    await container.stop()
    await shutdown_webhook()
    await close_database_connection()


app = FastAPI(
    title=settings.bot_name,
    description="Telegram bot for clinic appointment booking with payment review and daily queues.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

app.include_router(webhook_router)


@app.get("/")
async def root():
    return {
        "message": f"{settings.bot_name} API",
        "version": VERSION,
        "endpoints": ["/health", "/info", "/telegram/webhook", "/telegram/webhook/info", "/telegram/health"],
    }


@app.get("/health")
async def health_check() -> JSONResponse:
    """Liveness plus database reachability."""
    db_ok = await check_database_connection()
    return JSONResponse(
        status_code=200 if db_ok else 503,
        content={"status": "healthy" if db_ok else "degraded", "database": db_ok, "version": VERSION},
    )


@app.get("/info")
async def app_info():
    """Cutoff state, scheduled jobs and live session count."""
    container = getattr(app.state, "container", None)
    if container is None:
        return {"name": settings.bot_name, "version": VERSION, "ready": False}

    scheduler = container.scheduler
    return {
        "name": settings.bot_name,
        "clinic": settings.clinic_name,
        "version": VERSION,
        "ready": True,
        "timezone": settings.clinic_timezone,
        "cutoff": scheduler.gate.info().model_dump(),
        "jobs": scheduler.job_times(),
        "active_sessions": len(container.sessions),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "clinic_bot.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
