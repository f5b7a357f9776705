import asyncio
import logging
import threading

log = logging.getLogger("selfsend.cancellation")


class CancellationToken:
    """Set-once stop flag shared by every task of one batch.

    Cancellation is cooperative: tasks read the flag at their checkpoints and it never
    interrupts a call already in progress. ``set`` may be called from any thread and any
    number of times; only the first call has an effect. Coroutines can ``await wait()``
    to be woken as soon as the flag is set.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._set = False
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = []

    def is_set(self) -> bool:
        return self._set

    def set(self) -> bool:
        """Request a stop. Returns True for the call that actually flipped the flag."""
        with self._lock:
            if self._set:
                return False
            self._set = True
            waiters, self._waiters = self._waiters, []
        for loop, ev in waiters:
            if not loop.is_closed():
                loop.call_soon_threadsafe(ev.set)
        log.debug("cancellation requested (%d waiters woken)", len(waiters))
        return True

    async def wait(self) -> None:
        loop = asyncio.get_running_loop()
        ev = asyncio.Event()
        with self._lock:
            if self._set:
                return
            entry = (loop, ev)
            self._waiters.append(entry)
        try:
            await ev.wait()
        finally:
            with self._lock:
                if entry in self._waiters:
                    self._waiters.remove(entry)
