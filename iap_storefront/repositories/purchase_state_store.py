"""Purchase state store - per-product purchase state with observer fan-out.

Thread-safe, dictionary-based storage. Every write goes through a single
lock and receives a sequence number, so observers see transitions for a
product in the order they were applied.
"""

import asyncio
import threading
import time
from typing import Callable, Optional

from iap_storefront.exceptions import (
    ConcurrentPurchaseRejectedError,
    InvalidStateTransitionError,
)
from iap_storefront.logging_config import get_logger
from iap_storefront.models.events import StateChangeEvent
from iap_storefront.models.purchase import PurchaseState
from iap_storefront.state_logger import log_purchase_state_change, log_rejected_transition

logger = get_logger(__name__)

StateListener = Callable[[StateChangeEvent], None]

_RETRY = frozenset({PurchaseState.IN_PROGRESS})

ALLOWED_TRANSITIONS: dict[PurchaseState, frozenset[PurchaseState]] = {
    PurchaseState.NOT_STARTED: frozenset({PurchaseState.IN_PROGRESS, PurchaseState.CANNOT_PAY}),
    PurchaseState.IN_PROGRESS: frozenset(
        {
            PurchaseState.PURCHASED,
            PurchaseState.PENDING,
            PurchaseState.CANCELLED,
            PurchaseState.FAILED,
            PurchaseState.FAILED_VERIFICATION,
        }
    ),
    PurchaseState.PURCHASED: frozenset({PurchaseState.PURCHASED}),
    PurchaseState.PENDING: _RETRY,
    PurchaseState.CANCELLED: _RETRY,
    PurchaseState.FAILED: _RETRY,
    PurchaseState.FAILED_VERIFICATION: _RETRY,
    PurchaseState.CANNOT_PAY: frozenset(),  # Terminal for the session
    PurchaseState.UNKNOWN: frozenset(),
}

# States a purchase may be refused from before it reaches the provider
PREFLIGHT_REJECTION_SOURCES = frozenset(
    {
        PurchaseState.NOT_STARTED,
        PurchaseState.PENDING,
        PurchaseState.CANCELLED,
        PurchaseState.FAILED,
        PurchaseState.FAILED_VERIFICATION,
    }
)


def is_transition_allowed(old_state: PurchaseState, new_state: PurchaseState) -> bool:
    return new_state in ALLOWED_TRANSITIONS.get(old_state, frozenset())


class StateSubscription:
    """Per-observer queue of state change events.

    Usage::

        subscription = store.subscribe()
        async for event in subscription:
            ...
    """

    def __init__(self, store: "PurchaseStateStore", max_queue_size: int = 0):
        self._store = store
        self._queue: asyncio.Queue[Optional[StateChangeEvent]] = asyncio.Queue(maxsize=max_queue_size)
        self._loop = asyncio.get_running_loop()
        self._closed = False
        self.dropped = 0

    def _deliver(self, event: Optional[StateChangeEvent]) -> None:
        """Enqueue without blocking; runs on the subscription's loop."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "state_subscription_overflow",
                product_id=event.product_id if event else None,
                dropped=self.dropped,
            )

    def push(self, event: Optional[StateChangeEvent]) -> None:
        """Hand an event to this subscription from any thread."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._deliver(event)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._deliver, event)

    async def get(self) -> StateChangeEvent:
        """Wait for the next event.

        Raises:
            StopAsyncIteration: If the subscription was closed
        """
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def get_nowait(self) -> Optional[StateChangeEvent]:
        """Get the next queued event without waiting, None if empty or closed."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Stop receiving events; iteration ends once queued events are consumed."""
        if self._closed:
            return
        self._closed = True
        self._store.unsubscribe(self)
        self.push(None)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "StateSubscription":
        return self

    async def __anext__(self) -> StateChangeEvent:
        return await self.get()


class PurchaseStateStore:
    """In-memory per-product purchase state.

    Entries are created on the first applied transition and updated in place;
    they are never removed for the life of the process. Reading a product
    without an entry yields NOT_STARTED and creates nothing.
    """

    def __init__(self):
        """Initialize store with empty state and no observers."""
        self._states: dict[str, PurchaseState] = {}
        self._sequence = 0
        self._subscriptions: list[StateSubscription] = []
        self._listeners: list[StateListener] = []
        self._lock = threading.RLock()

    def state_of(self, product_id: str) -> PurchaseState:
        """Get the current purchase state of a product."""
        with self._lock:
            return self._states.get(product_id, PurchaseState.NOT_STARTED)

    def set_state(
        self,
        product_id: str,
        new_state: PurchaseState,
        reason: Optional[str] = None,
    ) -> StateChangeEvent:
        """Apply a transition from the allowed transition table.

        Args:
            product_id: Product ID
            new_state: Target state
            reason: Reason for the transition (logged and published)

        Returns:
            The published StateChangeEvent

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        with self._lock:
            old_state = self.state_of(product_id)
            if not is_transition_allowed(old_state, new_state):
                log_rejected_transition(product_id, old_state, new_state, reason)
                raise InvalidStateTransitionError(product_id, old_state, new_state, reason)
            return self._apply(product_id, old_state, new_state, reason)

    def begin_purchase(self, product_id: str, reason: Optional[str] = None) -> StateChangeEvent:
        """Atomically move a product to IN_PROGRESS.

        Raises:
            ConcurrentPurchaseRejectedError: If a purchase is already in progress
            InvalidStateTransitionError: If the current state cannot start a purchase
        """
        with self._lock:
            if self.state_of(product_id) == PurchaseState.IN_PROGRESS:
                raise ConcurrentPurchaseRejectedError(product_id)
            return self.set_state(product_id, PurchaseState.IN_PROGRESS, reason)

    def reject(self, product_id: str, reason: str) -> Optional[StateChangeEvent]:
        """Record a purchase refused before it reached the provider.

        Moves the product to FAILED if its current state allows a pre-flight
        rejection; IN_PROGRESS, PURCHASED and CANNOT_PAY entries are left
        untouched.

        Returns:
            The published event, or None if the state was left unchanged
        """
        with self._lock:
            old_state = self.state_of(product_id)
            if old_state not in PREFLIGHT_REJECTION_SOURCES:
                log_rejected_transition(product_id, old_state, PurchaseState.FAILED, reason)
                return None
            return self._apply(product_id, old_state, PurchaseState.FAILED, reason)

    def _apply(
        self,
        product_id: str,
        old_state: PurchaseState,
        new_state: PurchaseState,
        reason: Optional[str],
    ) -> StateChangeEvent:
        """Write the new state and fan out the event. Caller holds the lock."""
        self._sequence += 1
        self._states[product_id] = new_state
        event = StateChangeEvent(
            sequence=self._sequence,
            product_id=product_id,
            old_state=old_state,
            new_state=new_state,
            reason=reason,
            timestamp_millis=int(time.time() * 1000),
        )
        log_purchase_state_change(
            product_id=product_id,
            old_state=old_state,
            new_state=new_state,
            sequence=event.sequence,
            reason=reason,
        )
        self._publish(event)
        return event

    def _publish(self, event: StateChangeEvent) -> None:
        """Fan out to observers without blocking. Caller holds the lock."""
        for subscription in list(self._subscriptions):
            subscription.push(event)

        if not self._listeners:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        for listener in list(self._listeners):
            if loop is not None:
                loop.call_soon(self._invoke_listener, listener, event)
            else:
                self._invoke_listener(listener, event)

    @staticmethod
    def _invoke_listener(listener: StateListener, event: StateChangeEvent) -> None:
        try:
            listener(event)
        except Exception as e:
            logger.error(
                "state_listener_failed",
                listener=getattr(listener, "__qualname__", repr(listener)),
                product_id=event.product_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def subscribe(self, max_queue_size: int = 0) -> StateSubscription:
        """Register a queue-backed observer. Must be called from a running event loop.

        Args:
            max_queue_size: Queue bound; 0 for unbounded. Events for a full
                queue are dropped and counted on the subscription.
        """
        subscription = StateSubscription(self, max_queue_size=max_queue_size)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: StateSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback observer.

        Callbacks are scheduled on the running event loop in transition order,
        or called inline when no loop is running.

        Returns:
            Function that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            self.remove_listener(listener)

        return remove

    def remove_listener(self, listener: StateListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def snapshot(self) -> dict[str, PurchaseState]:
        """Get a copy of all product states."""
        with self._lock:
            return dict(self._states)

    @property
    def sequence(self) -> int:
        """Sequence number of the last applied transition."""
        with self._lock:
            return self._sequence

    def close(self) -> None:
        """Close all subscriptions and drop listeners."""
        with self._lock:
            subscriptions = list(self._subscriptions)
            self._listeners.clear()
        for subscription in subscriptions:
            subscription.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def __contains__(self, product_id: str) -> bool:
        with self._lock:
            return product_id in self._states

    def __repr__(self) -> str:
        return f"PurchaseStateStore(products={len(self)}, sequence={self.sequence})"
