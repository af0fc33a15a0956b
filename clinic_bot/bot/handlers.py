"""
Telegram Bot Message Handlers

Turns aiogram messages into InboundEvents, runs them through the
conversation engine and delivers the replies.
"""

import logging
from typing import Iterable, Optional

from aiogram import F, Router
from aiogram.types import Message

from clinic_bot import messages
from clinic_bot.bot.transport import Notifier
from clinic_bot.models.schemas import InboundEvent, OutboundMessage
from clinic_bot.services.engine import ConversationEngine

logger = logging.getLogger(__name__)

# Create router for handlers
router = Router(name="clinic_router")


def to_inbound_event(message: Message, admin_ids: Iterable[int]) -> InboundEvent:
    """
    Extract an InboundEvent from a Telegram message.

    The largest photo size is used as the attachment; its file_id is the
    payment proof reference.

    Args:
        message: Aiogram Message object
        admin_ids: Telegram user ids with admin rights

    Returns:
        InboundEvent for the conversation engine
    """
    user = message.from_user
    sender_id = user.id if user else message.chat.id
    sender_name = user.full_name if user else ""
    attachment: Optional[str] = message.photo[-1].file_id if message.photo else None

    return InboundEvent(
        chat_id=message.chat.id,
        sender_id=sender_id,
        sender_name=sender_name,
        is_admin=sender_id in set(admin_ids),
        text=message.text or message.caption or "",
        attachment=attachment,
    )


@router.message(F.photo | F.text)
async def handle_message(
    message: Message,
    engine: ConversationEngine,
    notifier: Notifier,
) -> None:
    """
    Handle text and photo messages.

    Args:
        message: Incoming message
        engine: Conversation engine from the dispatcher workflow data
        notifier: Outbound delivery from the dispatcher workflow data
    """
    event = to_inbound_event(message, engine.settings.admin_ids)
    logger.info(
        f"Received {'photo' if event.attachment else 'text'} from chat {event.chat_id}: "
        f"{event.text[:100]}"
    )

    try:
        replies = await engine.handle(event)
    except Exception as e:
        logger.error(
            f"Unexpected error handling message from chat {event.chat_id}: {e}",
            exc_info=True,
        )
        replies = [OutboundMessage(chat_id=event.chat_id, text=messages.GENERIC_ERROR)]

    await notifier.deliver(replies)


@router.message()
async def handle_other_messages(message: Message) -> None:
    """
    Fallback handler for any other message types.

    Args:
        message: Incoming message
    """
    logger.debug(f"Ignoring {message.content_type} message from chat {message.chat.id}")
