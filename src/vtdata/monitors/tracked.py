"""
Tracked: an observable value slot.

set() always notifies trackers, even when the new value is the same object
or equal to the old one; a set means "refresh", not "changed". update()
notifies only when a different object is stored.

Trackers registered with run_later=True are handed to the slot's dispatcher
instead of running on the setting thread. The default dispatcher is a single
worker thread shared by all slots, so deferred trackers run one at a time in
the order they were scheduled.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Generic, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Tracker = Callable[[], None]
Dispatcher = Callable[[Tracker], None]

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def default_dispatcher(fn: Tracker) -> None:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tracked")
    _executor.submit(_run_tracker, fn)


def inline_dispatcher(fn: Tracker) -> None:
    _run_tracker(fn)


def _run_tracker(fn: Tracker) -> None:
    try:
        fn()
    except Exception:
        logger.exception("Tracker %r failed", fn)


class Tracked(Generic[T]):
    def __init__(self, initial: T, dispatcher: Dispatcher = default_dispatcher):
        self._value = initial
        self._dispatcher = dispatcher
        self._trackers: List[Tuple[Tracker, bool]] = []
        self._lock = threading.Lock()
        self._last_set = int(time.time() * 1000)

    def get(self) -> T:
        return self._value

    def last_set(self) -> int:
        """Wall-clock ms of the most recent set()/effective update()."""
        return self._last_set

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value
            self._last_set = int(time.time() * 1000)
            trackers = list(self._trackers)
        self._notify(trackers)

    def update(self, value: T) -> None:
        if value is not self._value:
            self.set(value)

    def add_tracker(self, fn: Tracker, run_later: bool = False) -> None:
        with self._lock:
            self._trackers.append((fn, run_later))

    def _notify(self, trackers: List[Tuple[Tracker, bool]]) -> None:
        for fn, run_later in trackers:
            if run_later:
                self._dispatcher(fn)
            else:
                fn()
