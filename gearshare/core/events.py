"""
Typed change notifications.

Every mutation in the service layer queues a `ChangeEvent` on the database session
it ran in. Once the surrounding transaction commits, the queued events are handed
to an `EventBus`, which dispatches them to explicitly registered subscribers. This
lets clients refresh their views when something they can see changes:

```
bus = EventBus()

unsubscribe = bus.subscribe(BorrowRequestChanged, handler)

async for event in bus.listen(user_id="abc"):
    ...
```
"""

import asyncio
import inspect
from collections import defaultdict
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.core.uuid import UUID

from .borrow import BorrowStatus, LoanStatus

QUEUE_KEY = "gearshare.events"

E = TypeVar("E", bound="ChangeEvent")
Handler = Callable[[E], Awaitable[None] | None]


class ChangeEvent(BaseModel):
    # The users who should refresh their views.
    audience: set[str] = Field(default_factory=set)

    @property
    def name(self) -> str:
        return type(self).__name__


class ResourceChanged(ChangeEvent):
    resource_id: UUID


class ResourceDeleted(ChangeEvent):
    resource_id: UUID


class GroupChanged(ChangeEvent):
    group_id: UUID


class GroupDeleted(ChangeEvent):
    group_id: UUID


class MembershipChanged(ChangeEvent):
    group_id: UUID
    user_id: str
    # None when the user is no longer a member.
    role: str | None = None


class ShareChanged(ChangeEvent):
    resource_id: UUID
    group_id: UUID
    shared: bool


class BorrowRequestChanged(ChangeEvent):
    request_id: UUID
    resource_id: UUID
    status: BorrowStatus
    loan_status: LoanStatus | None = None


class EventBus:
    """
    An in-process publish/subscribe hub. Handlers are registered against an event
    class and receive every event of that class or any of its subclasses.
    """

    def __init__(self):
        self._handlers: dict[type[ChangeEvent], list[Handler]] = defaultdict(list)

    def subscribe(
        self, event_type: type[E], handler: Handler
    ) -> Callable[[], None]:
        """
        Register `handler` for `event_type`. Returns a callable that removes the
        subscription again.
        """
        self._handlers[event_type].append(handler)

        def unsubscribe():
            try:
                self._handlers[event_type].remove(handler)
            except ValueError:
                pass

        return unsubscribe

    def subscriber_count(self, event_type: type[ChangeEvent] = ChangeEvent) -> int:
        return len(self._handlers.get(event_type, []))

    async def publish(self, event: ChangeEvent):
        for event_type in type(event).__mro__:
            if not (isinstance(event_type, type) and issubclass(event_type, ChangeEvent)):
                continue

            # Copy, as handlers may unsubscribe themselves.
            for handler in list(self._handlers.get(event_type, [])):
                result = handler(event)

                if inspect.isawaitable(result):
                    await result

    async def listen(self, user_id: str) -> AsyncIterator[ChangeEvent]:
        """
        Yield, forever, every event whose audience includes `user_id`.
        """
        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()

        def deliver(event: ChangeEvent):
            if user_id in event.audience:
                queue.put_nowait(event)

        unsubscribe = self.subscribe(ChangeEvent, deliver)

        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()


def queue(conn: AsyncSession, event: ChangeEvent):
    """
    Queue an event for publication once `conn`'s transaction has committed.
    """
    conn.info.setdefault(QUEUE_KEY, []).append(event)


def queued(conn: AsyncSession) -> list[Any]:
    return list(conn.info.get(QUEUE_KEY, []))


async def publish_queued(conn: AsyncSession, bus: EventBus) -> int:
    """
    Publish (and clear) everything queued on `conn`. Returns the number of events
    published.
    """
    pending = queued(conn)
    discard_queued(conn)

    for event in pending:
        await bus.publish(event)

    return len(pending)


def discard_queued(conn: AsyncSession):
    conn.info.pop(QUEUE_KEY, None)
