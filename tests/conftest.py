# tests/conftest.py
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient, ASGITransport
from asgi_lifespan import LifespanManager

from orderflow.core.config import Settings
from orderflow.deps import build_container, set_container
from orderflow.models.common import LatLng
from orderflow.models.order import Order, OrderItem
from orderflow.models.rider import Rider
from orderflow.services.gateways import SendResult


@pytest.fixture(scope="session")
def anyio_backend():
    # keep AnyIO on asyncio for the whole test session
    return "asyncio"


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> datetime:
        self.now += timedelta(**kw)
        return self.now


class FakeSms:
    def __init__(self):
        self.sent = []
        self.otps = []
        self.mode = "ok"   # ok | fail | hang | raise

    async def _outcome(self) -> SendResult:
        if self.mode == "fail":
            return SendResult(success=False, error="provider down")
        if self.mode == "hang":
            await asyncio.sleep(60)
        if self.mode == "raise":
            raise RuntimeError("socket closed")
        return SendResult(success=True)

    async def send(self, contact, message):
        self.sent.append((contact, message))
        return await self._outcome()

    async def send_otp(self, contact, code, purpose):
        self.otps.append((contact, code, purpose))
        return await self._outcome()


class FakePush:
    def __init__(self):
        self.sent = []

    async def send(self, recipient_id, payload):
        self.sent.append((recipient_id, payload))
        return SendResult(success=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sms():
    return FakeSms()


@pytest.fixture
def push():
    return FakePush()


@pytest.fixture
def cfg():
    return Settings(
        use_mongo=False,
        environment="test",
        otp_expose_code=True,
        channel_timeout_seconds=0.2,
        sweep_interval_seconds=3600,
    )


@pytest.fixture
def container(cfg, sms, push, clock):
    c = build_container(cfg, sms=sms, push=push, clock=clock)
    yield c
    c.otp_store.close()


@pytest.fixture
def co(container):
    return container.coordinator


@pytest.fixture
def make_order(container):
    async def _make(**kw) -> Order:
        kw.setdefault("customer_id", "cust-1")
        kw.setdefault("customer_contact", "+91 98765 43210")
        kw.setdefault("items", [
            OrderItem(name="Shirt", quantity=2, unit_price=50),
            OrderItem(name="Trouser", quantity=1, unit_price=80),
        ])
        kw.setdefault("pickup_location", LatLng(lat=28.41, lng=77.01))
        order = Order(**kw)
        order.recompute_totals()
        await container.orders.save(order)
        return order
    return _make


@pytest.fixture
def make_rider(container, clock):
    async def _make(**kw) -> Rider:
        kw.setdefault("name", "Amit Singh")
        kw.setdefault("contact", "+91 9876543211")
        kw.setdefault("is_active", True)
        kw.setdefault("status", "approved")
        kw.setdefault("location", LatLng(lat=28.40, lng=77.00))
        kw.setdefault("last_location_update", clock())
        rider = Rider(**kw)
        await container.riders.save(rider)
        return rider
    return _make


@pytest.fixture
async def test_client(container):
    from orderflow.main import app
    set_container(container)
    async with LifespanManager(app):
        transport = ASGITransport(app=app, raise_app_exceptions=True)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    set_container(None)
