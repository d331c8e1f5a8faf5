"""Delivery executors: where delegate callbacks and completions run.

Anything with a ``submit(fn, *args)`` method works, including a
:class:`concurrent.futures.ThreadPoolExecutor`.  Callbacks are never run
on the background I/O pool.
"""

from __future__ import annotations

import functools
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Callable, Protocol

from PySide6.QtCore import QCoreApplication, QObject, QThread, Qt, Signal, Slot

LOGGER = logging.getLogger(__name__)


class Dispatcher(Protocol):
    """Protocol for delivery executors."""

    def submit(self, fn: Callable[..., Any], /, *args: Any) -> Any: ...


class QtMainThreadDispatcher(QObject):
    """Run submitted callables on the thread that owns this object.

    Created on the GUI thread, this marshals every callback onto the Qt
    event loop through a queued signal, the same way background workers
    hand results back to the main thread elsewhere in Qt code.
    """

    _invoke = Signal(object)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._invoke.connect(self._run, Qt.ConnectionType.QueuedConnection)

    def submit(self, fn: Callable[..., Any], /, *args: Any) -> None:
        self._invoke.emit(functools.partial(fn, *args))

    @Slot(object)
    def _run(self, call: Callable[[], Any]) -> None:
        try:
            call()
        except Exception:
            LOGGER.exception("Error in main-thread delivery")


def create_delivery_thread() -> ThreadPoolExecutor:
    """Return a dedicated single-thread executor for callbacks."""

    return ThreadPoolExecutor(max_workers=1, thread_name_prefix="tjimagecache-delivery")


def create_default_dispatcher() -> Dispatcher | Executor:
    """Pick the Qt main thread when an application runs on this thread.

    Without a ``QCoreApplication`` (scripts, tests, servers) callbacks go to
    a dedicated delivery thread instead.
    """

    app = QCoreApplication.instance()
    if app is not None and QThread.currentThread() == app.thread():
        return QtMainThreadDispatcher()
    return create_delivery_thread()
