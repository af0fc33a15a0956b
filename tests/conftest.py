"""
Pytest fixtures for the clinic bot tests.

Every test gets a fresh in-memory SQLite database, a controllable clock
pinned to clinic-local time and a transport that records what was sent.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from clinic_bot.bot.transport import Notifier, TransportError
from clinic_bot.config import Settings
from clinic_bot.container import build_container
from clinic_bot.db.session import init_database, make_session_factory
from clinic_bot.models.schemas import InboundEvent, OutboundMessage
from clinic_bot.services.ledger import BookingLedger, PriceTable
from clinic_bot.services.sessions import SessionStore

CLINIC_TZ = "Asia/Damascus"
ADMIN_ID = 900
PATIENT_ID = 111
NEW_PRICE = 50000
FOLLOWUP_PRICE = 25000


class FakeClock:
    """Callable clock that tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set_local(self, hour: int, minute: int = 0, day: Optional[int] = None) -> None:
        local = self.now.astimezone(ZoneInfo(CLINIC_TZ))
        local = local.replace(hour=hour, minute=minute, day=day or local.day, second=0, microsecond=0)
        self.now = local.astimezone(timezone.utc)

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeTransport:
    """Records sends; chats in fail_chats raise TransportError."""

    def __init__(self):
        self.texts: List[tuple] = []
        self.photos: List[tuple] = []
        self.fail_chats: set = set()
        self.fail_photos = False

    async def send_text(self, chat_id, text):
        if chat_id in self.fail_chats:
            raise TransportError(f"chat {chat_id} unreachable")
        self.texts.append((chat_id, text))

    async def send_photo(self, chat_id, photo, caption):
        if self.fail_photos or chat_id in self.fail_chats:
            raise TransportError(f"photo to {chat_id} failed")
        self.photos.append((chat_id, photo, caption))

    def texts_to(self, chat_id) -> List[str]:
        return [text for target, text in self.texts if target == chat_id]


class ChatDriver:
    """Sends messages into the engine as one chat."""

    def __init__(self, engine, chat_id: int, is_admin: bool = False, name: str = "Test User"):
        self.engine = engine
        self.chat_id = chat_id
        self.is_admin = is_admin
        self.name = name

    def event(self, text: str = "", attachment: Optional[str] = None) -> InboundEvent:
        return InboundEvent(
            chat_id=self.chat_id,
            sender_id=self.chat_id,
            sender_name=self.name,
            is_admin=self.is_admin,
            text=text,
            attachment=attachment,
        )

    async def say(self, text: str) -> List[OutboundMessage]:
        return await self.engine.handle(self.event(text))

    async def send_photo(self, file_id: str, caption: str = "") -> List[OutboundMessage]:
        return await self.engine.handle(self.event(caption, attachment=file_id))

    @property
    def state(self):
        return self.engine.sessions.get(self.chat_id).state


def texts_for(replies: List[OutboundMessage], chat_id) -> List[str]:
    return [reply.text for reply in replies if reply.chat_id == chat_id]


@pytest.fixture
def clock():
    """Monday 10 March 2025, 10:00 clinic time."""
    local = datetime(2025, 3, 10, 10, 0, tzinfo=ZoneInfo(CLINIC_TZ))
    return FakeClock(local.astimezone(timezone.utc))


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def prices():
    return PriceTable(new_consultation=NEW_PRICE, followup=FOLLOWUP_PRICE)


@pytest.fixture
def ledger(session_factory, prices, clock):
    return BookingLedger(session_factory, prices, CLINIC_TZ, clock=clock)


@pytest.fixture
def sessions(clock):
    return SessionStore(timeout_minutes=30, clock=clock)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def notifier(transport):
    return Notifier(transport)


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        clinic_name="Test Clinic",
        clinic_timezone=CLINIC_TZ,
        admin_ids=[ADMIN_ID],
        cutoff_enabled=True,
        cutoff_hour=18,
        cutoff_minute=0,
        price_new_consultation=NEW_PRICE,
        price_followup=FOLLOWUP_PRICE,
        currency="SYP",
        payment_instructions="Pay by bank transfer",
        payment_copy_values=["0933000111", "SY00CLINIC"],
    )


@pytest.fixture
def container(test_settings, session_factory, transport, clock):
    return build_container(
        test_settings,
        session_factory,
        transport,
        clock=clock,
        send_delay_seconds=0,
    )


@pytest.fixture
def engine(container):
    return container.engine


@pytest.fixture
def scheduler(container):
    return container.scheduler


@pytest.fixture
def patient(engine):
    return ChatDriver(engine, PATIENT_ID, name="Ali")


@pytest.fixture
def admin(engine):
    return ChatDriver(engine, ADMIN_ID, is_admin=True, name="Admin")


@pytest_asyncio.fixture
async def doctors(container):
    """Two doctors in the directory."""
    ledger = container.ledger
    first = await ledger.add_doctor("Dr. Ahmad Khalil", "Cardiology", "501")
    second = await ledger.add_doctor("Dr. Sara Haddad", "Pediatrics", "502")
    return [first, second]
