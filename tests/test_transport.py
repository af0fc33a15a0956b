"""
Tests for outbound delivery and Telegram message conversion.
"""

from datetime import datetime, timezone

import pytest
from aiogram.exceptions import TelegramBadRequest
from aiogram.methods import SendMessage
from aiogram.types import Chat, Message, PhotoSize, User

from clinic_bot.bot.handlers import to_inbound_event
from clinic_bot.bot.transport import TelegramTransport, TransportError
from clinic_bot.models.schemas import OutboundMessage
from tests.conftest import ADMIN_ID, PATIENT_ID


class TestNotifier:
    """Delivery with graceful degradation."""

    @pytest.mark.asyncio
    async def test_text_delivery(self, notifier, transport):
        delivered = await notifier.send(OutboundMessage(chat_id=PATIENT_ID, text="hello"))

        assert delivered
        assert transport.texts_to(PATIENT_ID) == ["hello"]

    @pytest.mark.asyncio
    async def test_photo_falls_back_to_text(self, notifier, transport):
        transport.fail_photos = True

        delivered = await notifier.send(
            OutboundMessage(chat_id=ADMIN_ID, text="receipt for #1", photo="file-1")
        )

        assert delivered
        assert transport.photos == []
        [text] = transport.texts_to(ADMIN_ID)
        assert text.startswith("receipt for #1")
        assert "couldn't be loaded" in text

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, notifier, transport):
        transport.fail_chats.add(PATIENT_ID)

        delivered = await notifier.send(OutboundMessage(chat_id=PATIENT_ID, text="hello"))

        assert not delivered

    @pytest.mark.asyncio
    async def test_deliver_continues_after_failure(self, notifier, transport):
        transport.fail_chats.add(1)

        count = await notifier.deliver([
            OutboundMessage(chat_id=1, text="a"),
            OutboundMessage(chat_id=2, text="b"),
            OutboundMessage(chat_id=3, text="c", photo="file-1"),
        ])

        assert count == 2
        assert transport.texts_to(2) == ["b"]
        assert transport.photos == [(3, "file-1", "c")]


class FailingBot:
    async def send_message(self, chat_id, text):
        raise TelegramBadRequest(method=SendMessage(chat_id=chat_id, text=text), message="chat not found")


class RecordingBot:
    def __init__(self):
        self.calls = []

    async def send_message(self, chat_id, text):
        self.calls.append((chat_id, text))


class TestTelegramTransport:
    @pytest.mark.asyncio
    async def test_api_errors_become_transport_errors(self):
        with pytest.raises(TransportError):
            await TelegramTransport(FailingBot()).send_text(5, "hi")

    @pytest.mark.asyncio
    async def test_numeric_contact_is_sent_as_chat_id(self):
        bot = RecordingBot()
        transport = TelegramTransport(bot)

        await transport.send_text("501", "summary")
        await transport.send_text("@dr_sara", "summary")

        assert bot.calls == [(501, "summary"), ("@dr_sara", "summary")]


def make_message(user_id: int, text=None, caption=None, photo=None) -> Message:
    return Message(
        message_id=1,
        date=datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc),
        chat=Chat(id=user_id, type="private"),
        from_user=User(id=user_id, is_bot=False, first_name="Ali", last_name="Hassan"),
        text=text,
        caption=caption,
        photo=photo,
    )


class TestInboundConversion:
    def test_text_message(self):
        event = to_inbound_event(make_message(PATIENT_ID, text="hi"), [ADMIN_ID])

        assert event.chat_id == PATIENT_ID
        assert event.sender_name == "Ali Hassan"
        assert event.text == "hi"
        assert event.attachment is None
        assert not event.is_admin

    def test_photo_uses_largest_size_and_caption(self):
        photo = [
            PhotoSize(file_id="small", file_unique_id="s", width=90, height=90),
            PhotoSize(file_id="large", file_unique_id="l", width=1280, height=1280),
        ]

        event = to_inbound_event(make_message(ADMIN_ID, caption="receipt", photo=photo), [ADMIN_ID])

        assert event.attachment == "large"
        assert event.text == "receipt"
        assert event.is_admin
