import time
from typing import Any, Callable


class TimerHandle:
    """A scheduled callback that can be cancelled until it fires."""

    def __init__(self, name: str, due_at: float):
        self.name = name
        self.due_at = due_at
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def __repr__(self):
        return f"<TimerHandle {self.name} due_at={self.due_at:.3f} active={self.active}>"


class BackgroundScheduler:
    """Runs delayed callbacks on Socket.IO background tasks.

    - Every callback runs inside an app context
    - A cancelled handle turns the callback into a no-op when it wakes up
    - Exceptions are logged with traceback and never escape the worker
    """

    def __init__(self, app, sio):
        self.app = app
        self.socketio = sio

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, fn: Callable[..., Any], *args, name: str = 'timer') -> TimerHandle:
        delay = max(0.0, float(delay))
        handle = TimerHandle(name, self.now() + delay)
        self.app.logger.debug(f"[timer-set] {name} delay={delay:.2f}s due_at={handle.due_at:.3f}")
        self.socketio.start_background_task(self._worker, handle, delay, fn, args)
        return handle

    def spawn(self, fn: Callable[..., Any], *args, name: str = 'task') -> TimerHandle:
        return self.call_later(0, fn, *args, name=name)

    def _worker(self, handle: TimerHandle, delay: float, fn, args) -> None:
        if delay:
            self.socketio.sleep(delay)
        if handle.cancelled:
            self.app.logger.debug(f"[timer-abort] {handle.name} cancelled")
            return
        handle.fired = True
        with self.app.app_context():
            try:
                fn(*args)
            except Exception:
                self.app.logger.exception(f"[timer-error] {handle.name} callback failed")
