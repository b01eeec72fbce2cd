"""Debounced persistence: bursts of mutations coalesce into one save."""
import logging
import threading
from typing import Callable

from ledgercal.utils.constants import PERSIST_DELAY_SECONDS

logger = logging.getLogger(__name__)


class DebouncedPersister:
    """Calls `flush_fn` once the state has been quiet for `delay` seconds.

    A failed flush is logged and the state stays dirty; it is retried on the
    next mark_dirty() or explicit flush, always with the full current state.
    With delay=None no timer is armed and saving waits for flush().
    """

    def __init__(
        self,
        flush_fn: Callable[[], None],
        delay: float | None = PERSIST_DELAY_SECONDS,
        timer_factory: Callable = threading.Timer,
    ):
        self._flush_fn = flush_fn
        self._delay = delay
        self._timer_factory = timer_factory
        self._timer = None
        self._dirty = False
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()

    @property
    def dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self):
        with self._lock:
            self._dirty = True
            self._cancel_timer()
            if self._delay is None:
                return
            self._timer = self._timer_factory(self._delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> bool:
        """Save now if dirty. Returns False when the save failed."""
        with self._flush_lock:
            with self._lock:
                if not self._dirty:
                    return True
                self._dirty = False
                self._timer = None
            try:
                self._flush_fn()
            except Exception:
                logger.exception("Saving changes failed; will retry on the next change")
                with self._lock:
                    self._dirty = True
                return False
            return True

    def flush_now(self) -> bool:
        """Cancel any pending timer and save synchronously."""
        with self._lock:
            self._cancel_timer()
        return self.flush()

    def close(self) -> bool:
        return self.flush_now()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
