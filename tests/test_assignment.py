# tests/test_assignment.py
import anyio
import pytest

from orderflow.core.errors import NotFoundError, ValidationError
from orderflow.deps import build_container
from orderflow.repos.inmemory import (
    InMemoryNotificationStore, InMemoryOrderStore, InMemoryRiderStore, InMemoryVerificationStore,
)

pytestmark = pytest.mark.anyio


async def test_inactive_rider_is_refused(co, make_order, make_rider):
    rider = await make_rider(is_active=False)
    order = await make_order()
    with pytest.raises(ValidationError):
        await co.assign_order_to_rider(order.id, rider.id)
    assert (await co.get_order(order.id)).status == "created"
    assert (await co.get_order(order.id)).rider_id is None


async def test_unapproved_rider_is_refused(co, make_order, make_rider):
    rider = await make_rider(status="pending")
    order = await make_order()
    with pytest.raises(ValidationError):
        await co.assign_order_to_rider(order.id, rider.id)


async def test_unknown_rider_or_order(co, make_order, make_rider):
    rider = await make_rider()
    order = await make_order()
    with pytest.raises(NotFoundError):
        await co.assign_order_to_rider(order.id, "ghost")
    with pytest.raises(NotFoundError):
        await co.assign_order_to_rider("ghost", rider.id)


async def test_assign_commits_all_steps(co, container, make_order, make_rider, sms):
    rider = await make_rider()
    order = await make_order(vendor_id=None)
    res = await co.assign_order_to_rider(order.id, rider.id, vendor_id="vendor1")
    assert res.steps == ["order_status", "release_previous_rider", "rider_bookkeeping",
                         "notification_record", "notify_rider", "record_delivery"]
    assert res.order.status == "pickup_assigned"
    assert res.order.rider_id == rider.id
    assert res.order.vendor_id == "vendor1"
    assert res.rider.assigned_orders == [order.id]
    assert res.notification_sent
    assert res.notification.sent_via == ["app", "sms"]
    assert sms.sent[0][0] == rider.contact

    stored = await co.get_order(order.id)
    assert stored.history[-1].from_status == "created"
    assert stored.history[-1].to_status == "pickup_assigned"


async def test_sms_outage_still_assigns(co, make_order, make_rider, sms):
    sms.mode = "fail"
    rider = await make_rider()
    order = await make_order()
    res = await co.assign_order_to_rider(order.id, rider.id)
    assert res.order.status == "pickup_assigned"
    assert res.notification.delivery_status.app is True
    assert res.notification.delivery_status.sms is False
    assert res.notification_sent is False


async def test_reassignment_moves_bookkeeping(co, container, make_order, make_rider):
    first = await make_rider(name="First")
    second = await make_rider(name="Second", contact="+91 9000000002")
    order = await make_order()
    await co.assign_order_to_rider(order.id, first.id)
    res = await co.assign_order_to_rider(order.id, second.id)
    assert res.order.status == "pickup_assigned"
    assert res.order.rider_id == second.id
    holders = await container.riders.find_by_assigned_order(order.id)
    assert [r.id for r in holders] == [second.id]


async def test_delivery_leg_and_release(co, container, make_order, make_rider):
    rider = await make_rider()
    order = await make_order(status="ready_for_delivery")
    res = await co.assign_order_to_rider(order.id, rider.id)
    assert res.order.status == "delivery_assigned"
    done = await co.advance_order_status(order.id, "delivered")
    assert done.status == "completed" and done.rider_id is None
    assert done.delivered_at is not None
    assert (await container.riders.get_by_id(rider.id)).assigned_orders == []
    with pytest.raises(ValidationError):
        await co.assign_order_to_rider(order.id, rider.id)


class FlakyNotificationStore(InMemoryNotificationStore):
    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    async def save(self, n):
        if self.failures:
            self.failures -= 1
            raise ConnectionError("notification store unavailable")
        return await super().save(n)


def _container_with(cfg, sms, push, clock, notifications):
    stores = (InMemoryOrderStore(), InMemoryRiderStore(), InMemoryVerificationStore(), notifications)
    return build_container(cfg, sms=sms, push=push, stores=stores, clock=clock)


async def test_notify_failure_rolls_back(cfg, sms, push, clock):
    from orderflow.models.order import Order
    from orderflow.models.rider import Rider
    c = _container_with(cfg, sms, push, clock, FlakyNotificationStore(failures=10))
    rider = Rider(contact="1", is_active=True, status="approved")
    order = Order(customer_id="c")
    await c.riders.save(rider)
    await c.orders.save(order)

    with pytest.raises(ConnectionError):
        await c.coordinator.assign_order_to_rider(order.id, rider.id)
    after = await c.orders.get_by_id(order.id)
    assert after.status == "created" and after.rider_id is None
    assert (await c.riders.get_by_id(rider.id)).assigned_orders == []
    assert sms.sent == []
    assert c.notifications.notifications == {}


async def test_notify_retry_recovers(cfg, sms, push, clock):
    from orderflow.models.order import Order
    from orderflow.models.rider import Rider
    c = _container_with(cfg, sms, push, clock, FlakyNotificationStore(failures=1))
    rider = Rider(contact="1", is_active=True, status="approved")
    order = Order(customer_id="c")
    await c.riders.save(rider)
    await c.orders.save(order)
    res = await c.coordinator.assign_order_to_rider(order.id, rider.id)
    assert res.order.status == "pickup_assigned"
    assert len(sms.sent) == 1
    assert len(c.notifications.notifications) == 1


class OutcomeWriteFailingStore(InMemoryNotificationStore):
    """Accepts the first write of a record, fails rewrites while failures remain."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    async def save(self, n):
        if n.id in self.notifications and self.failures:
            self.failures -= 1
            raise ConnectionError("notification store unavailable")
        return await super().save(n)


async def _assign_with(cfg, sms, push, clock, store):
    from orderflow.models.order import Order
    from orderflow.models.rider import Rider
    c = _container_with(cfg, sms, push, clock, store)
    rider = Rider(contact="1", is_active=True, status="approved")
    order = Order(customer_id="c")
    await c.riders.save(rider)
    await c.orders.save(order)
    return c, order, rider


async def test_outcome_write_retry_does_not_resend(cfg, sms, push, clock):
    store = OutcomeWriteFailingStore(failures=1)
    c, order, rider = await _assign_with(cfg, sms, push, clock, store)
    res = await c.coordinator.assign_order_to_rider(order.id, rider.id)
    assert res.order.status == "pickup_assigned"
    assert res.notification_sent is True
    assert len(sms.sent) == 1
    assert list(store.notifications) == [res.notification.id]
    assert store.notifications[res.notification.id].delivery_status.sms is True


async def test_outcome_write_failure_discards_record(cfg, sms, push, clock):
    store = OutcomeWriteFailingStore(failures=10)
    c, order, rider = await _assign_with(cfg, sms, push, clock, store)
    with pytest.raises(ConnectionError):
        await c.coordinator.assign_order_to_rider(order.id, rider.id)
    after = await c.orders.get_by_id(order.id)
    assert after.status == "created" and after.rider_id is None
    assert (await c.riders.get_by_id(rider.id)).assigned_orders == []
    # one send, no stored record for the undone assignment
    assert len(sms.sent) == 1
    assert store.notifications == {}
    assert await c.coordinator.dispatcher.unread_count(rider.id) == 0


async def test_cancel_and_assign_race_stays_consistent(co, container, make_order, make_rider):
    rider = await make_rider()
    order = await make_order()
    errors = []

    async def run(coro_fn):
        try:
            await coro_fn()
        except ValidationError as exc:
            errors.append(exc)

    async with anyio.create_task_group() as tg:
        tg.start_soon(run, lambda: co.assign_order_to_rider(order.id, rider.id))
        tg.start_soon(run, lambda: co.advance_order_status(order.id, "cancelled"))

    final = await co.get_order(order.id)
    assert final.status == "cancelled"
    assert final.rider_id is None
    assert (await container.riders.get_by_id(rider.id)).assigned_orders == []
    assert len(errors) <= 1


async def test_vendor_assignment_keeps_status(co, make_order):
    order = await make_order(status="pickup_completed")
    updated = await co.assign_vendor(order.id, "vendor2")
    assert updated.vendor_id == "vendor2"
    assert updated.status == "pickup_completed"
    with pytest.raises(ValidationError):
        await co.assign_vendor(order.id, "")
