"""
CancelSignal - A cancellation token with an inspectable reason.

A signal fires at most once. Signals compose: ``CancelSignal.any`` fires
with the reason of whichever source fires first, and ``CancelSignal.after``
fires from a loop timer. ``guard`` lets any awaitable be abandoned as soon
as the signal fires.

Usage:
    deadline = CancelSignal.after(8.0, "Operation timed out")
    attempt = CancelSignal.any(deadline, CancelSignal.after(3.0, "timeout"))
    try:
        response = await attempt.guard(client.get(url))
    finally:
        attempt.dispose()
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from parking.services.errors import RequestCancelledError

T = TypeVar("T")

Callback = Callable[["CancelSignal"], None]


class CancelSignal:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._callbacks: list[Callback] = []
        self._timer: asyncio.TimerHandle | None = None
        self._subscriptions: list[tuple["CancelSignal", Callback]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "Aborted") -> bool:
        """Fire the signal. Returns False if it had already fired."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        for callback in list(self._callbacks):
            callback(self)
        self._callbacks.clear()
        return True

    def add_callback(self, callback: Callback) -> None:
        if self.cancelled:
            callback(self)
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callback) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    async def wait(self) -> str | None:
        """Suspend until the signal fires and return its reason."""
        await self._event.wait()
        return self._reason

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the signal fires first.

        Raises:
            RequestCancelledError: carrying this signal's reason, after the
                pending work has been cancelled.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RequestCancelledError(self._reason or "Aborted")

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            if not waiter.done():
                waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise RequestCancelledError(self._reason or "Aborted")

    def dispose(self) -> None:
        """Release the timer and detach from source signals."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for source, callback in self._subscriptions:
            source.remove_callback(callback)
        self._subscriptions.clear()

    @classmethod
    def after(cls, seconds: float, reason: str = "Timed out") -> "CancelSignal":
        """A signal that fires ``seconds`` from now on the running loop."""
        signal = cls()
        loop = asyncio.get_running_loop()
        signal._timer = loop.call_later(seconds, signal.cancel, reason)
        return signal

    @classmethod
    def any(cls, *sources: "CancelSignal | None") -> "CancelSignal":
        """A signal that fires with the reason of the first source to fire."""
        combined = cls()

        def forward(source: CancelSignal) -> None:
            combined.cancel(source.reason or "Aborted")

        for source in sources:
            if source is None:
                continue
            if source.cancelled:
                combined.cancel(source.reason or "Aborted")
                break
            source.add_callback(forward)
            combined._subscriptions.append((source, forward))
        return combined
