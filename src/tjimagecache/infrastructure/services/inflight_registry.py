"""Single-flight registry coalescing concurrent lookups of the same key."""

from __future__ import annotations

import enum
import logging
import threading
import weakref
from dataclasses import dataclass, field
from typing import Any, Callable

from ...domain.models import Depth
from .delivery import Dispatcher

LOGGER = logging.getLogger(__name__)


class JoinResult(enum.Enum):
    STARTED = "started"
    JOINED = "joined"


@dataclass(eq=False)
class InFlightTicket:
    """Pending lookup for one hashed key.

    ``depth`` is the deepest tier any waiter allowed; it only grows while
    the ticket is alive.  ``cancelled`` records that every waiter detached,
    which does not stop the work itself.  Waiters are keyed by identity so
    that unhashable delegates (plain dataclasses, for instance) work.
    """

    key: str
    url: str
    depth: Depth
    waiters: dict[int, Callable[[], Any]] = field(default_factory=dict)
    cancelled: bool = False


class InFlightRegistry:
    """Track keys being loaded and fan completions out to every waiter.

    ``join_or_start`` and ``complete`` are atomic with respect to each
    other: a waiter that joined before ``complete`` is always notified,
    one that arrives afterwards starts a fresh ticket.  Notifications are
    submitted to *dispatcher*, never run on the completing thread.
    """

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher
        self._tickets: dict[str, InFlightTicket] = {}
        self._lock = threading.Lock()

    def join_or_start(
        self,
        key: str,
        url: str,
        waiter: Any | None = None,
        depth: Depth = Depth.INTERNET,
    ) -> JoinResult:
        ref = None if waiter is None else _waiter_ref(waiter)
        with self._lock:
            ticket = self._tickets.get(key)
            if ticket is None:
                ticket = InFlightTicket(key=key, url=url, depth=depth)
                self._tickets[key] = ticket
                result = JoinResult.STARTED
            else:
                if depth > ticket.depth:
                    ticket.depth = depth
                result = JoinResult.JOINED
            if ref is not None:
                ticket.waiters[id(waiter)] = ref
                ticket.cancelled = False
        LOGGER.debug("%s lookup for %s", result.value.capitalize(), key)
        return result

    def depth_for(self, key: str) -> Depth | None:
        """Return the deepest tier the pending ticket for *key* may reach."""
        with self._lock:
            ticket = self._tickets.get(key)
            return None if ticket is None else ticket.depth

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._tickets

    def cancel_waiter(self, key: str, waiter: Any) -> bool:
        """Detach *waiter* from the ticket for *key*.

        The load keeps running even when no waiters remain, so the disk and
        memory tiers are still populated for later lookups.
        """
        with self._lock:
            ticket = self._tickets.get(key)
            if ticket is None:
                return False
            ref = ticket.waiters.get(id(waiter))
            if ref is None or ref() is not waiter:
                return False
            del ticket.waiters[id(waiter)]
            if not any(r() is not None for r in ticket.waiters.values()):
                ticket.cancelled = True
        return True

    def complete(self, key: str, image: Any | None) -> int:
        """Retire the ticket for *key* and notify its waiters.

        *image* ``None`` signals failure.  Returns the number of waiters
        still alive at completion time.
        """
        with self._lock:
            ticket = self._tickets.pop(key, None)
        if ticket is None:
            return 0
        refs = [ref for ref in ticket.waiters.values() if ref() is not None]
        if refs:
            self._dispatcher.submit(_deliver, refs, ticket.url, image)
        return len(refs)

    def clear(self) -> None:
        """Forget every pending ticket; their waiters will not be notified."""
        with self._lock:
            self._tickets.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tickets)


def _waiter_ref(waiter: Any) -> Callable[[], Any]:
    try:
        return weakref.ref(waiter)
    except TypeError:
        # No __weakref__ slot; held strongly until the ticket retires.
        return lambda: waiter


def _deliver(refs: list[Callable[[], Any]], url: str, image: Any | None) -> None:
    for ref in refs:
        delegate = ref()
        if delegate is None:
            continue
        if image is not None:
            callback = getattr(delegate, "did_get_image", None)
            args: tuple = (image, url)
        else:
            callback = getattr(delegate, "did_fail_to_get_image", None)
            args = (url,)
        if callback is None:
            continue
        try:
            callback(*args)
        except Exception:
            LOGGER.exception("Error in image cache delegate for %s", url)
