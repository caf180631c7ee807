import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from partipay.core.config import settings
from partipay.core.locks import SessionLocks
from partipay.db import mongo as mongo_module
from partipay.models.session import SplitMode
from partipay.realtime.broadcaster import SessionBroadcaster
from partipay.repositories.session_repo import SessionRepository
from partipay.schemas.session import BillItemBase
from partipay.services import session_state
from partipay.services.bank_service import BankService
from partipay.services.settlement_service import SettlementService

TEST_DATABASE_NAME = "partipay_test"


class RecordingConnection:
    """Stand-in for a realtime socket that keeps everything sent to it."""

    def __init__(self, fail: bool = False):
        self.messages = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection closed")
        self.messages.append(data)

    def types(self):
        return [m["type"] for m in self.messages]


@pytest.fixture
def blauwe_kater_items():
    """The De Blauwe Kater table 12 bill, total 73.40."""
    return [
        BillItemBase(name="Gentse Waterzooi", unit_price_cents=1850, quantity=1),
        BillItemBase(name="Vlaamse Stoofpot", unit_price_cents=2200, quantity=1),
        BillItemBase(name="Frieten met Mayo", unit_price_cents=650, quantity=2),
        BillItemBase(name="Duvel (33cl)", unit_price_cents=420, quantity=2),
        BillItemBase(name="Jupiler (25cl)", unit_price_cents=350, quantity=1),
        BillItemBase(name="Belgische Wafels", unit_price_cents=800, quantity=1),
    ]


@pytest.fixture
def small_items():
    """Waterzooi x1 and Frieten x2, total 31.50."""
    return [
        BillItemBase(name="Waterzooi", unit_price_cents=1850, quantity=1),
        BillItemBase(name="Frieten", unit_price_cents=650, quantity=2),
    ]


@pytest.fixture
def equal_session(blauwe_kater_items):
    """In-memory equal-split session for 4, main booker already joined."""
    session, _ = session_state.create_session(
        restaurant_name="De Blauwe Kater",
        table_number="12",
        split_mode=SplitMode.EQUAL,
        items=blauwe_kater_items,
        main_booker_name="Jan",
        participant_count=4
    )
    return session


@pytest.fixture
def items_session(small_items):
    """In-memory item-claim session, main booker already joined."""
    session, _ = session_state.create_session(
        restaurant_name="De Blauwe Kater",
        table_number="7",
        split_mode=SplitMode.ITEMS,
        items=small_items,
        main_booker_name="Jan"
    )
    return session


@pytest_asyncio.fixture
async def test_db():
    """In-memory MongoDB database for repository and service tests."""
    client = AsyncMongoMockClient()
    db = client[TEST_DATABASE_NAME]
    await mongo_module.create_indexes(db)
    yield db
    await client.drop_database(TEST_DATABASE_NAME)


@pytest.fixture
def broadcaster():
    return SessionBroadcaster()


@pytest.fixture
def service(test_db, broadcaster):
    """Settlement service with a deterministic, instant mock bank."""
    return SettlementService(
        SessionRepository(test_db),
        broadcaster,
        SessionLocks(),
        BankService(delay_seconds=0, failure_rate=0)
    )


@pytest.fixture
def test_client(monkeypatch):
    """FastAPI test client backed by an in-memory MongoDB."""
    monkeypatch.setattr(mongo_module, "AsyncIOMotorClient", AsyncMongoMockClient)
    monkeypatch.setattr(settings, "DATABASE_NAME", TEST_DATABASE_NAME)
    monkeypatch.setattr(settings, "BANK_AUTH_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(settings, "BANK_AUTH_FAILURE_RATE", 0.0)

    from partipay.main import create_app

    # Use TestClient with context manager to trigger lifespan
    with TestClient(create_app()) as client:
        yield client


@pytest.fixture
def listener():
    return RecordingConnection()


@pytest.fixture
def broken_listener():
    return RecordingConnection(fail=True)
