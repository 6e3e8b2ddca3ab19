# orderflow/services/otp.py
import asyncio
import hmac
import itertools
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from orderflow.core.errors import ConflictError, NotFoundError, RateLimitError, ValidationError
from orderflow.core.locks import KeyedLock
from orderflow.models.common import utcnow
from orderflow.models.otp import OTPChallenge, OTPRecord, OTPStatus
from .gateways import SmsGateway

logger = logging.getLogger(__name__)

Key = Tuple[str, str]


class OtpStore:
    """
    Records keyed by (contact, purpose), each with its own eviction timer
    and its own lock. A timer that fires after its record was replaced or
    consumed does nothing.
    """

    def __init__(self):
        self._records: Dict[Key, OTPRecord] = {}
        self._timers: Dict[Key, asyncio.TimerHandle] = {}
        self._generation: Dict[Key, int] = {}
        self._seq = itertools.count(1)
        self.locks = KeyedLock()

    def get(self, key: Key) -> Optional[OTPRecord]:
        return self._records.get(key)

    def put(self, record: OTPRecord, ttl_seconds: float) -> None:
        key = record.key
        self._cancel_timer(key)
        gen = next(self._seq)
        self._records[key] = record
        self._generation[key] = gen
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(max(ttl_seconds, 0), self._expire, key, gen)

    def evict(self, key: Key) -> bool:
        self._cancel_timer(key)
        self._generation.pop(key, None)
        return self._records.pop(key, None) is not None

    def keys_for(self, contact: str):
        return [k for k in self._records if k[0] == contact]

    def close(self) -> None:
        for key in list(self._timers):
            self._cancel_timer(key)

    def _cancel_timer(self, key: Key) -> None:
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _expire(self, key: Key, gen: int) -> None:
        if self._generation.get(key) != gen:
            return
        self._timers.pop(key, None)
        self._generation.pop(key, None)
        self._records.pop(key, None)
        logger.debug("OTP expired and cleaned up for %s (%s)", *key)

    def __len__(self) -> int:
        return len(self._records)


class OtpGate:
    def __init__(self, store: OtpStore, sms: SmsGateway, *,
                 ttl_seconds: int = 600, max_attempts: int = 5, length: int = 6,
                 expose_code: bool = False, verify_timeout: float = 5.0,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.sms = sms
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self.length = length
        self.expose_code = expose_code
        self.verify_timeout = verify_timeout
        self.clock = clock

    def generate_code(self) -> str:
        low = 10 ** (self.length - 1)
        return str(low + secrets.randbelow(9 * low))

    @staticmethod
    def _key(contact: str, purpose: str) -> Key:
        contact = (contact or "").strip()
        purpose = (purpose or "").strip()
        if not contact:
            raise ValidationError("Contact is required")
        if not purpose:
            raise ValidationError("Purpose is required")
        return contact, purpose

    async def request(self, contact: str, purpose: str = "login") -> OTPChallenge:
        key = self._key(contact, purpose)
        async with self.store.locks.hold(key):
            replaced = self.store.get(key) is not None
            record = OTPRecord(
                contact=key[0], purpose=key[1], code=self.generate_code(),
                expires_at=self.clock() + timedelta(seconds=self.ttl_seconds),
                max_attempts=self.max_attempts,
            )
            self.store.put(record, self.ttl_seconds)
        if replaced:
            logger.info("OTP for %s (%s) re-issued, previous code invalidated", *key)
        result = await self.sms.send_otp(key[0], record.code, key[1])
        if not result.success:
            logger.warning("OTP for %s (%s) stored but not delivered: %s", *key, result.error)
        return OTPChallenge(
            contact=key[0], purpose=key[1], expires_at=record.expires_at,
            sent=result.success, code=record.code if self.expose_code else None,
        )

    async def verify(self, contact: str, purpose: str, candidate: str) -> bool:
        key = self._key(contact, purpose)
        try:
            return await asyncio.wait_for(self._verify(key, candidate), timeout=self.verify_timeout)
        except asyncio.TimeoutError:
            raise ConflictError("OTP verification is busy, retry shortly")

    async def _verify(self, key: Key, candidate: str) -> bool:
        async with self.store.locks.hold(key):
            record = self.store.get(key)
            if record is None:
                logger.info("No OTP found for %s (%s)", *key)
                raise NotFoundError("OTP not found or expired")

            if self.clock() > record.expires_at:
                self.store.evict(key)
                logger.info("OTP expired for %s (%s)", *key)
                raise NotFoundError("OTP has expired", reason="expired")

            if record.attempts >= record.max_attempts:
                self.store.evict(key)
                logger.warning("Max OTP attempts exceeded for %s (%s)", *key)
                raise RateLimitError("Maximum verification attempts exceeded")

            if not hmac.compare_digest(record.code.encode(), str(candidate or "").encode()):
                record.attempts += 1
                logger.info("Invalid OTP for %s (%s), attempts %d/%d",
                            key[0], key[1], record.attempts, record.max_attempts)
                raise ValidationError("Invalid OTP", attempts_remaining=record.attempts_remaining)

            self.store.evict(key)
            logger.info("OTP verified for %s (%s)", *key)
            return True

    def status(self, contact: str, purpose: str = "login") -> OTPStatus:
        record = self.store.get(self._key(contact, purpose))
        if record is None:
            return OTPStatus(exists=False)
        remaining = (record.expires_at - self.clock()).total_seconds()
        return OTPStatus(
            exists=True, expires_at=record.expires_at, attempts=record.attempts,
            max_attempts=record.max_attempts, seconds_remaining=max(remaining, 0.0),
        )

    def clear(self, contact: str) -> int:
        keys = self.store.keys_for((contact or "").strip())
        for key in keys:
            self.store.evict(key)
        logger.info("Cleared %d OTPs for %s", len(keys), contact)
        return len(keys)
