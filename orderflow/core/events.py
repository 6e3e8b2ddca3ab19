# orderflow/core/events.py
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Generic, List, TypeVar, Union

logger = logging.getLogger(__name__)

E = TypeVar("E")
Handler = Callable[[E], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class VerificationDecided:
    order_id: str
    verification_id: str
    status: str
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventChannel(Generic[E]):
    """
    In-process publish/subscribe channel for one event type.
    Handlers may be plain or async callables; a failing handler is logged
    and does not stop delivery to the others.
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)
        return unsubscribe

    @property
    def subscribers(self) -> int:
        return len(self._handlers)

    async def publish(self, event: E) -> None:
        for handler in list(self._handlers):
            try:
                res = handler(event)
                if inspect.isawaitable(res):
                    await res
            except Exception:
                logger.exception("Subscriber on %s failed for %r", self.name, event)
