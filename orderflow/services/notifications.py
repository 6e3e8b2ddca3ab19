# orderflow/services/notifications.py
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from orderflow.core.errors import ExternalServiceError, NotFoundError, ValidationError
from orderflow.models.common import utcnow
from orderflow.models.notification import Notification, NotificationPayload, Recipient
from orderflow.repos.base import NotificationStore
from .gateways import PushGateway, SendResult, SmsGateway

logger = logging.getLogger(__name__)

CHANNELS = ("app", "sms", "push")


def _channels(channels: Iterable[str]) -> List[str]:
    out: List[str] = []
    for ch in channels:
        if ch not in CHANNELS:
            raise ValidationError(f"Unknown notification channel: {ch}")
        if ch not in out:
            out.append(ch)
    if not out:
        raise ValidationError("At least one channel is required")
    return out


def _outbound(n: Notification) -> List[str]:
    return [ch for ch in n.sent_via if ch != "app"]


class NotificationDispatcher:
    """
    Creates a Notification and pushes it down each requested channel.
    Every channel gets its own outcome; a failing or slow SMS/push call
    is recorded as a failure for that channel only and never fails the
    dispatch itself.
    """

    def __init__(self, store: NotificationStore, sms: SmsGateway, push: PushGateway, *,
                 channel_timeout: float = 5.0, retention_days: int = 30,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.sms = sms
        self.push = push
        self.channel_timeout = channel_timeout
        self.retention_days = retention_days
        self.clock = clock

    async def dispatch(self, recipient: Recipient, payload: NotificationPayload,
                       channels: Iterable[str] = ("app",)) -> Notification:
        n = self.compose(recipient, payload, channels)
        await self.store.save(n)
        if _outbound(n):
            await self.deliver(n, recipient)
            await self.store.save(n)
        return n

    def compose(self, recipient: Recipient, payload: NotificationPayload,
                channels: Iterable[str] = ("app",)) -> Notification:
        """Build the record without storing or sending it."""
        chans = _channels(channels)
        n = Notification(
            recipient_id=recipient.id,
            recipient_kind=recipient.kind,
            sent_via=chans,
            created_at=self.clock(),
            **payload.model_dump(),
        )
        # the app channel is the stored record itself
        n.delivery_status.app = "app" in chans
        return n

    async def deliver(self, n: Notification, recipient: Recipient) -> Notification:
        """Send n down its outbound channels once and record each outcome on n (not stored)."""
        outbound = _outbound(n)
        results = await asyncio.gather(*(self._attempt(ch, recipient, n) for ch in outbound))
        for ch, err in zip(outbound, results):
            setattr(n.delivery_status, ch, err is None)
            if err is not None:
                n.delivery_errors[ch] = err
        return n

    async def discard(self, notification_id: str) -> bool:
        removed = await self.store.delete(notification_id)
        if removed:
            logger.info("Discarded notification %s", notification_id)
        return removed

    async def _attempt(self, channel: str, recipient: Recipient, n: Notification) -> Optional[str]:
        try:
            result = await asyncio.wait_for(self._send(channel, recipient, n), timeout=self.channel_timeout)
            if not result.success:
                raise ExternalServiceError(result.error or f"{channel} delivery failed", channel=channel)
            return None
        except asyncio.TimeoutError:
            err = f"{channel} delivery timed out after {self.channel_timeout}s"
        except ExternalServiceError as exc:
            err = exc.message
        except Exception as exc:
            err = f"{channel} delivery raised {exc.__class__.__name__}: {exc}"
        logger.warning("Notification %s to %s %s failed: %s", n.id, recipient.kind, recipient.id, err)
        return err

    async def _send(self, channel: str, recipient: Recipient, n: Notification) -> SendResult:
        if channel == "sms":
            if not recipient.contact:
                return SendResult(success=False, error="No phone number")
            return await self.sms.send(recipient.contact, f"{n.title}: {n.message}")
        return await self.push.send(recipient.id, {
            "notification_id": n.id,
            "title": n.title,
            "message": n.message,
            "data": n.data,
        })

    async def mark_read(self, notification_id: str) -> Notification:
        n = await self.store.mark_read(notification_id, self.clock())
        if n is None:
            raise NotFoundError("Notification not found", notification_id=notification_id)
        return n

    async def mark_all_read(self, recipient_id: str) -> int:
        count = await self.store.mark_all_read(recipient_id, self.clock())
        logger.info("Marked %d notifications as read for %s", count, recipient_id)
        return count

    async def list_for(self, recipient_id: str, include_read: bool = False,
                       limit: int = 50) -> List[Notification]:
        return await self.store.list_for_recipient(recipient_id, include_read=include_read, limit=limit)

    async def unread_count(self, recipient_id: str) -> int:
        return await self.store.count_unread(recipient_id)

    async def cleanup(self, days_old: Optional[int] = None) -> int:
        now = self.clock()
        cutoff = now - timedelta(days=self.retention_days if days_old is None else days_old)
        removed = await self.store.purge(read_before=cutoff, now=now)
        logger.info("Cleaned up %d old notifications", removed)
        return removed
