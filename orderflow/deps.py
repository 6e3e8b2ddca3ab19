# orderflow/deps.py
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from dotenv import load_dotenv
load_dotenv()

from orderflow.core.config import Settings, settings as default_settings
from orderflow.core.locks import KeyedLock
from orderflow.models.common import utcnow
from orderflow.services.assignment import AssignmentOrchestrator
from orderflow.services.coordinator import Coordinator
from orderflow.services.gateways import PushGateway, SmsGateway
from orderflow.services.notifications import NotificationDispatcher
from orderflow.services.order_state import OrderStateMachine
from orderflow.services.otp import OtpGate, OtpStore
from orderflow.services.sweeper import SweepWorker
from orderflow.services.verification import VerificationCoordinator


@dataclass
class Container:
    settings: Settings
    orders: object
    riders: object
    verifications: object
    notifications: object
    otp_store: OtpStore
    coordinator: Coordinator
    sweeper: SweepWorker


def _stores(cfg: Settings):
    if cfg.use_mongo:
        from orderflow.repos.mongo import (
            MongoNotificationStore, MongoOrderStore, MongoRiderStore,
            MongoVerificationStore, get_db,
        )
        db = get_db()
        return (MongoOrderStore(db), MongoRiderStore(db),
                MongoVerificationStore(db), MongoNotificationStore(db))
    from orderflow.repos.inmemory import (
        InMemoryNotificationStore, InMemoryOrderStore, InMemoryRiderStore,
        InMemoryVerificationStore,
    )
    return (InMemoryOrderStore(), InMemoryRiderStore(),
            InMemoryVerificationStore(), InMemoryNotificationStore())


def build_container(cfg: Optional[Settings] = None, *, sms: Optional[SmsGateway] = None,
                    push: Optional[PushGateway] = None, stores: Optional[tuple] = None,
                    clock: Callable[[], datetime] = utcnow) -> Container:
    cfg = cfg or default_settings
    orders, riders, verifications, notifications = stores or _stores(cfg)
    sms = sms or SmsGateway(cfg.sms_api_url, cfg.sms_api_key, live=cfg.is_production,
                            timeout=cfg.channel_timeout_seconds)
    push = push or PushGateway()

    sm = OrderStateMachine(orders, riders, KeyedLock(), clock=clock)
    dispatcher = NotificationDispatcher(
        notifications, sms, push,
        channel_timeout=cfg.channel_timeout_seconds,
        retention_days=cfg.notification_retention_days,
        clock=clock,
    )
    verifier = VerificationCoordinator(
        verifications, sm, dispatcher, riders,
        ttl_hours=cfg.verification_ttl_hours,
        conflict_policy=cfg.verification_conflict_policy,
        clock=clock,
    )
    assignments = AssignmentOrchestrator(sm, riders, dispatcher,
                                         notify_retries=cfg.assignment_notify_retries)
    otp_store = OtpStore()
    otp = OtpGate(
        otp_store, sms,
        ttl_seconds=cfg.otp_ttl_seconds,
        max_attempts=cfg.otp_max_attempts,
        length=cfg.otp_length,
        expose_code=cfg.otp_expose_code and not cfg.is_production,
        verify_timeout=cfg.channel_timeout_seconds,
        clock=clock,
    )
    coordinator = Coordinator(
        state_machine=sm, riders=riders, dispatcher=dispatcher,
        verifications=verifier, assignments=assignments, otp=otp, clock=clock,
    )
    sweeper = SweepWorker(
        [("notifications_purged", dispatcher.cleanup),
         ("verifications_expired", verifier.expire_stale)],
        interval_seconds=cfg.sweep_interval_seconds,
    )
    return Container(cfg, orders, riders, verifications, notifications,
                     otp_store, coordinator, sweeper)


_container: Optional[Container] = None


def get_container() -> Container:
    global _container
    if _container is None:
        _container = build_container()
    return _container


def set_container(container: Optional[Container]) -> None:
    global _container
    _container = container


def get_coordinator() -> Coordinator:
    return get_container().coordinator
