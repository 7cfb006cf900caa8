import threading
import logging
from enum import Enum
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger("debounce")

T = TypeVar("T")

DEFAULT_DELAY_MS = 300


class DebounceState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    FIRED = "fired"


class Debouncer:
    """Trailing-edge debouncer with an explicit lifecycle.

    Every call to `schedule` (or calling the instance) re-arms a single timer;
    `fn` runs once `delay_ms` has passed without another call, using the
    arguments of the most recent call only. The owner must call `close()`
    (or use the instance as a context manager) when it is torn down so a
    pending timer never fires against disposed state.

    States: IDLE -> PENDING on schedule, PENDING -> PENDING on reschedule,
    PENDING -> FIRED -> IDLE when the timer elapses, PENDING -> IDLE on
    cancel/close.
    """

    def __init__(self, fn: Callable[..., Any], delay_ms: float = DEFAULT_DELAY_MS,
                 timer_factory: Callable[..., Any] = threading.Timer):
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        self.fn = fn
        self.delay_ms = delay_ms
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._call: Optional[Tuple[Tuple[Any, ...], Dict[str, Any]]] = None
        # bumped on every reschedule/cancel; a timer only fires for its own generation
        self._generation = 0
        self._closed = False
        self.state = DebounceState.IDLE

    @property
    def pending(self) -> bool:
        return self.state is DebounceState.PENDING

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("cannot schedule on a closed debouncer")
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._call = (args, kwargs)
            timer = self._timer_factory(self.delay_ms / 1000.0, self._on_timer, args=(generation,))
            timer.daemon = True
            self._timer = timer
            self.state = DebounceState.PENDING
        timer.start()

    __call__ = schedule

    def cancel(self) -> bool:
        """Drop the pending call, if any. Returns True when one was dropped."""
        with self._lock:
            return self._cancel_locked()

    def flush(self) -> bool:
        """Run the pending call right now on the calling thread."""
        with self._lock:
            if self._call is None or self._closed:
                return False
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            call = self._take_locked()
            generation = self._generation
        self._run(call, generation)
        return True

    def close(self) -> None:
        with self._lock:
            self._cancel_locked()
            self._closed = True

    def __enter__(self) -> "Debouncer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _cancel_locked(self) -> bool:
        had_pending = self._call is not None
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._call = None
        self._generation += 1
        self.state = DebounceState.IDLE
        return had_pending

    def _take_locked(self) -> Tuple[Tuple[Any, ...], Dict[str, Any]]:
        call = self._call
        self._call = None
        self._timer = None
        self.state = DebounceState.FIRED
        return call

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._closed or self._call is None:
                return
            call = self._take_locked()
        try:
            self._run(call, generation)
        except Exception:
            # nothing above a timer thread can handle it
            logger.exception("Debounced call to %r failed", self.fn)

    def _run(self, call, generation: int) -> None:
        with self._lock:
            # close() may have landed after the call was taken
            if self._closed:
                return
        args, kwargs = call
        try:
            self.fn(*args, **kwargs)
        finally:
            with self._lock:
                if self._generation == generation and self.state is DebounceState.FIRED:
                    self.state = DebounceState.IDLE


def debounce(fn: Optional[Callable[..., Any]] = None, *, delay_ms: float = DEFAULT_DELAY_MS):
    """Wrap `fn` in a `Debouncer`. Works as a plain call or as a decorator:

        @debounce(delay_ms=250)
        def refresh(query): ...
    """
    if fn is None:
        return lambda f: Debouncer(f, delay_ms)
    return Debouncer(fn, delay_ms)


class DebouncedValue(Generic[T]):
    """Holds the raw value typed by a user and the value committed after quiescence.

    `is_pending` is true while the two differ, which is what a search box
    shows as its "searching..." indicator.
    """

    def __init__(self, initial: T, delay_ms: float = DEFAULT_DELAY_MS,
                 on_commit: Optional[Callable[[T], Any]] = None,
                 timer_factory: Callable[..., Any] = threading.Timer):
        self._initial = initial
        self.latest: T = initial
        self.committed: T = initial
        self._on_commit = on_commit
        self._debouncer = Debouncer(self._commit, delay_ms, timer_factory=timer_factory)

    @property
    def is_pending(self) -> bool:
        return self.latest != self.committed

    def set(self, value: T) -> None:
        self._debouncer.schedule(value)
        self.latest = value

    def clear(self) -> None:
        self.set(self._initial)

    def flush(self) -> bool:
        return self._debouncer.flush()

    def close(self) -> None:
        self._debouncer.close()

    def _commit(self, value: T) -> None:
        self.committed = value
        if self._on_commit is not None:
            self._on_commit(value)
