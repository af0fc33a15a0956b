"""
Telegram Webhook

FastAPI routes that receive Telegram updates for the clinic bot and feed
them to the aiogram dispatcher, plus webhook registration at startup.
"""

import logging
from typing import Optional

from aiogram import Bot, Dispatcher
from aiogram.types import Update
from fastapi import APIRouter, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from clinic_bot.bot.handlers import router as handlers_router
from clinic_bot.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram", tags=["telegram"])

# only message updates drive the booking flow
ALLOWED_UPDATES = ["message"]

_bot: Optional[Bot] = None
_dispatcher: Optional[Dispatcher] = None


def get_bot() -> Bot:
    """Lazily create the single clinic Bot from the configured token."""
    global _bot
    if _bot is None:
        _bot = Bot(token=settings.telegram_bot_token)
        logger.info("Clinic bot client created")
    return _bot


def get_dispatcher() -> Dispatcher:
    """Lazily create the Dispatcher with the clinic message router attached."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = Dispatcher()
        _dispatcher.include_router(handlers_router)
    return _dispatcher


def _check_secret(received: Optional[str]) -> None:
    expected = settings.webhook_secret_token
    if expected and received != expected:
        logger.warning("Rejected webhook call with a wrong secret token")
        raise HTTPException(status_code=403, detail="Invalid secret token")


@router.post("/webhook")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
) -> Response:
    """
    Receive one Telegram update.

    Handler failures are logged and still answered with 200: the engine
    already replied with an apology, and a redelivered update would run
    the booking step twice.
    """
    _check_secret(x_telegram_bot_api_secret_token)

    try:
        payload = await request.json()
    except ValueError as e:
        logger.error(f"Webhook body is not JSON: {e}")
        raise HTTPException(status_code=400, detail="Invalid JSON")

    bot = get_bot()
    try:
        update = Update.model_validate(payload, context={"bot": bot})
    except ValueError as e:
        logger.error(f"Webhook body is not a Telegram update: {e}")
        raise HTTPException(status_code=400, detail="Invalid update format")

    try:
        await get_dispatcher().feed_update(bot=bot, update=update)
    except Exception as e:
        logger.error(f"Update #{update.update_id} failed in dispatch: {e}", exc_info=True)

    return Response(status_code=200)


@router.get("/webhook/info")
async def webhook_info() -> JSONResponse:
    """What Telegram reports about our webhook registration."""
    try:
        info = await get_bot().get_webhook_info()
    except Exception as e:
        logger.error(f"Could not fetch webhook info: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=str(e))

    return JSONResponse(content={
        "url": info.url,
        "pending_update_count": info.pending_update_count,
        "last_error_message": info.last_error_message,
        "allowed_updates": info.allowed_updates,
    })


@router.get("/health")
async def bot_health() -> JSONResponse:
    """Bot reachability through getMe."""
    try:
        me = await get_bot().get_me()
    except Exception as e:
        logger.error(f"Bot health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "error": str(e)})
    return JSONResponse(content={"status": "healthy", "bot_username": me.username, "bot_id": me.id})


async def startup_webhook() -> bool:
    """
    Point Telegram at our webhook URL.

    Returns:
        True if Telegram reports the configured URL afterwards
    """
    url = settings.telegram_webhook_url
    if not url:
        logger.warning("TELEGRAM_WEBHOOK_URL not set, webhook not registered")
        return False

    bot = get_bot()
    try:
        await bot.set_webhook(
            url=url,
            secret_token=settings.webhook_secret_token,
            allowed_updates=ALLOWED_UPDATES,
        )
        registered = (await bot.get_webhook_info()).url
    except Exception as e:
        logger.error(f"Webhook registration failed: {e}", exc_info=True)
        return False

    if registered != url:
        logger.error(f"Webhook registered as {registered!r}, expected {url!r}")
        return False
    logger.info(f"Webhook registered at {url}")
    return True


async def shutdown_webhook() -> None:
    """Close the bot's HTTP session; the webhook itself stays registered."""
    global _bot
    if _bot is None:
        return
    try:
        await _bot.session.close()
        logger.info("Bot session closed")
    except Exception as e:
        logger.error(f"Error closing bot session: {e}")
    finally:
        _bot = None


__all__ = [
    "router",
    "get_bot",
    "get_dispatcher",
    "startup_webhook",
    "shutdown_webhook",
]
