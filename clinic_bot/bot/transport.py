"""
Outbound Transport

Delivers OutboundMessage intents through the Telegram Bot API. Send
failures are logged and reported as False; they never propagate into
the ledger code that produced the message.
"""

import logging
from typing import Iterable, Protocol, Union

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from clinic_bot import messages
from clinic_bot.models.schemas import OutboundMessage

logger = logging.getLogger(__name__)

ChatRef = Union[int, str]


class TransportError(Exception):
    """Raised when the transport fails to deliver a message."""
    pass


class Transport(Protocol):
    async def send_text(self, chat_id: ChatRef, text: str) -> None:
        ...

    async def send_photo(self, chat_id: ChatRef, photo: str, caption: str) -> None:
        ...


def _chat_ref(chat_id: ChatRef) -> ChatRef:
    """Doctor contacts are stored as text; numeric ones are chat ids."""
    if isinstance(chat_id, str):
        value = chat_id.strip()
        if value.lstrip("-").isdigit():
            return int(value)
        return value
    return chat_id


class TelegramTransport:
    """Transport backed by an aiogram Bot."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_text(self, chat_id: ChatRef, text: str) -> None:
        try:
            await self.bot.send_message(chat_id=_chat_ref(chat_id), text=text)
        except TelegramAPIError as e:
            raise TransportError(f"Failed to send message to {chat_id}: {e}") from e

    async def send_photo(self, chat_id: ChatRef, photo: str, caption: str) -> None:
        try:
            await self.bot.send_photo(chat_id=_chat_ref(chat_id), photo=photo, caption=caption)
        except TelegramAPIError as e:
            raise TransportError(f"Failed to send photo to {chat_id}: {e}") from e


class Notifier:
    """
    Fire-and-forget delivery of outbound intents.

    A photo that cannot be sent is retried once as text with a notice
    that the image could not be loaded.
    """

    def __init__(self, transport: Transport):
        self.transport = transport

    async def send(self, message: OutboundMessage) -> bool:
        """
        Deliver one message.

        Returns:
            True if the message (or its text fallback) was delivered
        """
        if message.photo:
            try:
                await self.transport.send_photo(message.chat_id, message.photo, message.text)
                return True
            except TransportError as e:
                logger.warning(f"Photo delivery to {message.chat_id} failed, falling back to text: {e}")
                message = OutboundMessage(
                    chat_id=message.chat_id,
                    text=messages.admin_proof_fallback(message.text),
                )

        try:
            await self.transport.send_text(message.chat_id, message.text)
            return True
        except TransportError as e:
            logger.error(f"Message delivery to {message.chat_id} failed: {e}")
            return False

    async def deliver(self, outbound: Iterable[OutboundMessage]) -> int:
        """Send messages in order; returns how many were delivered."""
        delivered = 0
        for message in outbound:
            if await self.send(message):
                delivered += 1
        return delivered
