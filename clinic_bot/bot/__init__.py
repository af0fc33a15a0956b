"""Telegram side of the clinic bot: webhook routes, message handlers, transport."""

from clinic_bot.bot.handlers import router as handlers_router
from clinic_bot.bot.webhook import get_bot, get_dispatcher, shutdown_webhook, startup_webhook
from clinic_bot.bot.webhook import router as webhook_router

__all__ = [
    "webhook_router",
    "handlers_router",
    "startup_webhook",
    "shutdown_webhook",
    "get_bot",
    "get_dispatcher",
]
