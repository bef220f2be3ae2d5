"""
Frame schedulers — "run this callback before the next frame".

Both implementations expose the same capability used by the controller:
  sched.schedule(callback) -> handle   callback(timestamp_seconds)
  sched.cancel(handle)                 no-op for unknown / fired handles
"""

import asyncio
from typing import Callable, Dict, Optional

FrameCallback = Callable[[float], None]


class ManualScheduler:
    """Virtual clock for tests and headless runs.

    Nothing fires until ``advance()`` is called. Callbacks scheduled while
    a frame is being fired wait for the next ``advance()``.
    """

    def __init__(self, start: float = 0.0):
        self.now = float(start)
        self.pending: Dict[int, FrameCallback] = {}
        self._next_handle = 1
        self.fired = 0

    def schedule(self, callback: FrameCallback) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self.pending[handle] = callback
        return handle

    def cancel(self, handle: Optional[int]) -> None:
        self.pending.pop(handle, None)

    def advance(self, seconds: float) -> int:
        """Move the clock forward and fire one frame. Returns callbacks fired."""
        self.now += seconds
        frame = self.pending
        self.pending = {}
        for cb in frame.values():
            cb(self.now)
        self.fired += len(frame)
        return len(frame)

    def run_frames(self, count: int, frame_interval: float = 1.0 / 60) -> None:
        for _ in range(count):
            self.advance(frame_interval)


class AsyncioFrameScheduler:
    """Fires callbacks on the running asyncio loop at a fixed frame interval.

    The loop is looked up per call unless one is given, so the same
    scheduler survives an app restart on a fresh loop.
    """

    def __init__(self, frame_interval: float = 1.0 / 60,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.frame_interval = frame_interval
        self._loop = loop
        self._handles: Dict[int, asyncio.TimerHandle] = {}
        self._next_handle = 1

    def schedule(self, callback: FrameCallback) -> int:
        loop = self._loop or asyncio.get_running_loop()
        handle = self._next_handle
        self._next_handle += 1

        def _fire():
            # Already removed → cancelled after the loop queued us.
            if self._handles.pop(handle, None) is None:
                return
            callback(loop.time())

        self._handles[handle] = loop.call_later(self.frame_interval, _fire)
        return handle

    def cancel(self, handle: Optional[int]) -> None:
        timer = self._handles.pop(handle, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        for timer in self._handles.values():
            timer.cancel()
        self._handles.clear()
