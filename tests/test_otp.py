# tests/test_otp.py
import anyio
import pytest

from orderflow.core.errors import NotFoundError, RateLimitError, ValidationError
from orderflow.models.otp import OTPRecord
from orderflow.services.otp import OtpGate, OtpStore

pytestmark = pytest.mark.anyio

PHONE = "9999999999"


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


async def test_wrong_code_reports_attempts_left(co):
    ch = await co.request_otp(PHONE, "login")
    assert len(ch.code) == 6 and ch.code.isdigit()
    with pytest.raises(ValidationError) as exc:
        await co.verify_otp(PHONE, "login", _wrong(ch.code))
    assert exc.value.details["attempts_remaining"] == 4


async def test_attempts_exhaust_then_record_is_gone(co):
    ch = await co.request_otp(PHONE, "login")
    bad = _wrong(ch.code)
    for left in (4, 3, 2, 1, 0):
        with pytest.raises(ValidationError) as exc:
            await co.verify_otp(PHONE, "login", bad)
        assert exc.value.details["attempts_remaining"] == left
    # budget spent: even the right code is refused and the record evicted
    with pytest.raises(RateLimitError):
        await co.verify_otp(PHONE, "login", ch.code)
    with pytest.raises(NotFoundError):
        await co.verify_otp(PHONE, "login", ch.code)


async def test_non_ascii_code_counts_as_a_wrong_attempt(co):
    ch = await co.request_otp(PHONE, "login")
    with pytest.raises(ValidationError) as exc:
        await co.verify_otp(PHONE, "login", "١٢٣٤٥٦")
    assert exc.value.details["attempts_remaining"] == 4
    assert await co.verify_otp(PHONE, "login", ch.code) is True


async def test_code_is_single_use(co):
    ch = await co.request_otp(PHONE, "pickup")
    assert await co.verify_otp(PHONE, "pickup", ch.code) is True
    with pytest.raises(NotFoundError):
        await co.verify_otp(PHONE, "pickup", ch.code)


async def test_purposes_are_separate(co):
    a = await co.request_otp(PHONE, "pickup")
    b = await co.request_otp(PHONE, "delivery")
    assert await co.verify_otp(PHONE, "delivery", b.code)
    assert await co.verify_otp(PHONE, "pickup", a.code)


async def test_new_request_replaces_old_code(co, container):
    first = await co.request_otp(PHONE, "login")
    second = await co.request_otp(PHONE, "login")
    assert len(container.otp_store) == 1
    if first.code != second.code:
        with pytest.raises(ValidationError):
            await co.verify_otp(PHONE, "login", first.code)
    assert await co.verify_otp(PHONE, "login", second.code)


async def test_expired_code_is_not_found(co, container, clock):
    ch = await co.request_otp(PHONE, "login")
    clock.advance(minutes=10, seconds=1)
    with pytest.raises(NotFoundError) as exc:
        await co.verify_otp(PHONE, "login", ch.code)
    assert exc.value.details["reason"] == "expired"
    assert len(container.otp_store) == 0


async def test_request_sends_code_by_sms(co, sms):
    ch = await co.request_otp(PHONE, "login")
    assert sms.otps == [(PHONE, ch.code, "login")]
    assert ch.sent is True


async def test_undelivered_code_is_still_stored(co, sms):
    sms.mode = "fail"
    ch = await co.request_otp(PHONE, "login")
    assert ch.sent is False
    assert co.otp.status(PHONE, "login").exists


async def test_blank_contact_rejected(co):
    with pytest.raises(ValidationError):
        await co.request_otp("  ", "login")


async def test_concurrent_correct_verifies_succeed_once(co):
    ch = await co.request_otp(PHONE, "login")
    outcomes = []

    async def attempt():
        try:
            outcomes.append(await co.verify_otp(PHONE, "login", ch.code))
        except NotFoundError:
            outcomes.append("gone")

    async with anyio.create_task_group() as tg:
        for _ in range(10):
            tg.start_soon(attempt)
    assert outcomes.count(True) == 1
    assert outcomes.count("gone") == 9


async def test_other_keys_do_not_wait_on_a_held_key(co, container):
    other = await co.request_otp("8888888888", "login")
    async with container.otp_store.locks.hold(("9999999999", "login")):
        with anyio.fail_after(1):
            assert await co.verify_otp("8888888888", "login", other.code)


async def test_status_and_clear(co, clock):
    await co.request_otp(PHONE, "login")
    await co.request_otp(PHONE, "pickup")
    st = co.otp.status(PHONE, "login")
    assert st.exists and st.attempts == 0 and st.max_attempts == 5
    assert st.seconds_remaining == pytest.approx(600)
    assert co.otp.clear(PHONE) == 2
    assert not co.otp.status(PHONE, "pickup").exists


async def test_timer_evicts_at_expiry(sms):
    gate = OtpGate(OtpStore(), sms, ttl_seconds=0.05)
    await gate.request(PHONE, "login")
    assert len(gate.store) == 1
    await anyio.sleep(0.2)
    assert len(gate.store) == 0


async def test_stale_timer_is_a_no_op(clock):
    store = OtpStore()
    key = (PHONE, "login")
    store.put(OTPRecord(contact=PHONE, purpose="login", code="123456", expires_at=clock()), 0.05)
    store.evict(key)
    store.put(OTPRecord(contact=PHONE, purpose="login", code="654321", expires_at=clock()), 30)
    await anyio.sleep(0.2)
    assert store.get(key).code == "654321"
    store._expire(key, gen=-1)
    assert store.get(key) is not None
    store.close()
