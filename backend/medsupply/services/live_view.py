"""
Live views over the inventory store.

A LiveView holds the latest result of one query plus a list of listeners.
The store re-runs every open view after each mutation; a view only notifies
its listeners when the result actually changed. Results are immutable
(tuples of frozen records, an optional record, or a summary), so listeners
never get a reference into the store's internals.

Delivery is latest-value: a listener always sees the current snapshot when
it subscribes and every later change, and the async stream() collapses a
burst of changes into the final one for slow consumers.

Usage:
    with store.critical_items() as view:
        sub = view.subscribe(lambda items: print(len(items)))
        ...
        sub.cancel()

    async for items in view.stream():
        await websocket.send_json(...)
"""
import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Callable, Generic, List, Mapping, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[Any], None]

_CLOSED = object()


class Subscription:
    """Handle for one listener on one view. Cancelling it affects nothing else."""

    def __init__(self, view: "LiveView", listener: Listener, on_close: Optional[Callable[[], None]] = None):
        self._view = view
        self._listener = listener
        self._on_close = on_close
        self.active = True

    def cancel(self):
        if not self.active:
            return
        self.active = False
        self._view._remove(self)

    def _deliver(self, value):
        if not self.active:
            return
        try:
            self._listener(value)
        except Exception:
            # One broken listener must not stop the others or the mutation
            logger.exception(f"Live view listener {self._listener!r} failed")

    def _close(self):
        self.active = False
        if self._on_close is None:
            return
        try:
            self._on_close()
        except Exception:
            logger.exception(f"Live view close hook {self._on_close!r} failed")


class LiveView(Generic[T]):
    def __init__(
        self,
        query: Callable[[Mapping[int, Any]], T],
        records: Mapping[int, Any],
        on_cancel: Callable[["LiveView"], None],
    ):
        self._query = query
        self._value: T = query(records)
        self._on_cancel = on_cancel
        self._subscriptions: List[Subscription] = []
        self._lock = threading.RLock()
        self.cancelled = False

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, listener: Listener, on_close: Optional[Callable[[], None]] = None) -> Subscription:
        """Register a listener and hand it the current snapshot right away."""
        subscription = Subscription(self, listener, on_close)
        with self._lock:
            if self.cancelled:
                raise RuntimeError("Cannot subscribe to a cancelled live view")
            self._subscriptions.append(subscription)
            subscription._deliver(self._value)
        return subscription

    def refresh(self, records: Mapping[int, Any]) -> bool:
        """Re-run the query; notify listeners if the result changed."""
        if self.cancelled:
            return False
        result = self._query(records)
        with self._lock:
            if result == self._value:
                return False
            self._value = result
            for subscription in list(self._subscriptions):
                if self._value is not result:
                    # A listener mutated the store and a nested refresh
                    # already delivered the newer value to everyone
                    break
                subscription._deliver(result)
        return True

    def cancel(self):
        """Detach from the store and drop every listener. Safe to call twice."""
        with self._lock:
            if self.cancelled:
                return
            self.cancelled = True
            subscriptions, self._subscriptions = self._subscriptions, []
        self._on_cancel(self)
        for subscription in subscriptions:
            subscription._close()

    def _remove(self, subscription: Subscription):
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    async def stream(self) -> AsyncIterator[T]:
        """
        Yield the current snapshot, then each change, until the view is cancelled
        or the consumer stops iterating. Only the newest pending snapshot is kept.
        """
        loop = asyncio.get_running_loop()
        pending: asyncio.Queue = asyncio.Queue(maxsize=1)

        def put_latest(value):
            if pending.full():
                if pending.get_nowait() is _CLOSED:
                    value = _CLOSED
            pending.put_nowait(value)

        subscription = self.subscribe(
            lambda value: loop.call_soon_threadsafe(put_latest, value),
            on_close=lambda: loop.call_soon_threadsafe(put_latest, _CLOSED),
        )
        try:
            while True:
                value = await pending.get()
                if value is _CLOSED:
                    return
                yield value
        finally:
            subscription.cancel()

    def __enter__(self) -> "LiveView[T]":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cancel()

    def __repr__(self):
        state = "cancelled" if self.cancelled else f"{len(self._subscriptions)} listeners"
        return f"<LiveView {state}>"
