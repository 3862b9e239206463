import logging
import threading
import time
from typing import Callable, Optional

from tuna_adventure.client.snapshot import TIMER_STATE_KEY, SnapshotCorrupt, TimerSnapshot

logger = logging.getLogger(__name__)


def wall_clock_ms() -> float:
    return time.time() * 1000


class ThreadScheduler:
    """Periodic and one-shot callbacks on daemon threads.

    Callbacks run one at a time under `lock`; code that touches the same
    state from other threads takes the lock too.
    """

    def __init__(self):
        self.lock = threading.RLock()

    class Handle:
        def __init__(self):
            self._cancelled = threading.Event()

        def cancel(self) -> None:
            self._cancelled.set()

        @property
        def cancelled(self) -> bool:
            return self._cancelled.is_set()

    def call_every(self, interval: float, callback: Callable[[], None]) -> 'ThreadScheduler.Handle':
        handle = self.Handle()

        def run():
            while not handle._cancelled.wait(interval):
                self._dispatch(handle, callback)

        threading.Thread(target=run, daemon=True).start()
        return handle

    def call_later(self, delay: float, callback: Callable[[], None]) -> 'ThreadScheduler.Handle':
        handle = self.Handle()

        def run():
            if not handle._cancelled.wait(delay):
                self._dispatch(handle, callback)

        threading.Thread(target=run, daemon=True).start()
        return handle

    def _dispatch(self, handle: 'ThreadScheduler.Handle', callback: Callable[[], None]) -> None:
        with self.lock:
            # Cancelled while waiting for the lock
            if not handle.cancelled:
                callback()


class CountdownTimer:
    """Decision countdown that survives reloads.

    Remaining time is derived from the persisted start time and duration,
    so a tab closed for a while resumes with the time that really elapsed.
    One interval per tab: `start` refuses to run twice.
    """

    tick_interval = 1.0

    def __init__(self, storage, scheduler, clock: Callable[[], float] = wall_clock_ms,
                 on_expire: Optional[Callable[[Optional[int]], None]] = None):
        self.storage = storage
        self.scheduler = scheduler
        self.clock = clock
        self.on_expire = on_expire
        self.state: Optional[TimerSnapshot] = None
        self._handle = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def remaining(self) -> int:
        if self.state is None:
            return 0
        return self.state.remaining(self.clock())

    def start(self, duration: int, position: Optional[int]) -> bool:
        if self.running:
            logger.info(f"[timer] already running position={self.state.scenario_position}, skipping start")
            return False
        self.state = TimerSnapshot(start_time=self.clock(), duration=int(duration), scenario_position=position)
        self._persist()
        self._handle = self.scheduler.call_every(self.tick_interval, self._tick)
        logger.info(f"[timer] started duration={duration} position={position}")
        return True

    def restore(self, position: Optional[int]) -> Optional[int]:
        """Resume a persisted countdown for `position`; returns remaining seconds."""
        if self.running:
            if self.state.scenario_position == position:
                return self.remaining()
            logger.info(f"[timer] dropping countdown for position={self.state.scenario_position}")
            self.stop()
        saved = self.load()
        if saved is None or not saved.is_active or saved.scenario_position != position:
            return None
        self.state = saved
        remaining = self.remaining()
        if remaining <= 0:
            self._expire()
            return 0
        self._handle = self.scheduler.call_every(self.tick_interval, self._tick)
        logger.info(f"[timer] restored remaining={remaining} position={position}")
        return remaining

    def load(self) -> Optional[TimerSnapshot]:
        raw = self.storage.get(TIMER_STATE_KEY)
        if raw is None:
            return None
        try:
            return TimerSnapshot.from_json(raw)
        except SnapshotCorrupt as exc:
            logger.warning(f"[timer] discarding corrupt timer state: {exc}")
            self.storage.remove(TIMER_STATE_KEY)
            return None

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self.state is not None and self.state.is_active:
            self.state.is_active = False
            self._persist()

    def detach(self) -> None:
        """Drop the interval but keep the persisted state for the next load."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def clear(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.state = None
        self.storage.remove(TIMER_STATE_KEY)

    def _tick(self) -> None:
        if self.state is None:
            return
        self._persist()
        if self.remaining() <= 0:
            self._expire()

    def _expire(self) -> None:
        position = self.state.scenario_position if self.state else None
        # Interval must be gone before the expiry callback can submit
        self.stop()
        logger.info(f"[timer] expired position={position}")
        if self.on_expire:
            self.on_expire(position)

    def _persist(self) -> None:
        if self.state is not None:
            self.storage.set(TIMER_STATE_KEY, self.state.to_json())
