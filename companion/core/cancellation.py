"""Cooperative cancellation and deadlines for long-running calls."""

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

from companion.core.errors import OperationCancelled, TimeoutFailure

T = TypeVar("T")


class CancelToken:
    """One-shot cancellation flag that can be awaited.

    Usage:
        token = CancelToken()
        task = asyncio.create_task(service.process_voice(path, cancel_token=token))
        token.cancel()
    """

    def __init__(self) -> None:
        self._event: asyncio.Event | None = None
        self._cancelled = False
        self.reason = ""

    def _get_event(self) -> asyncio.Event:
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "") -> None:
        self._cancelled = True
        self.reason = reason
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self, message: str = "Operation cancelled") -> None:
        if self._cancelled:
            raise OperationCancelled(message)

    async def wait(self) -> None:
        await self._get_event().wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if woken by cancellation."""
        if self._cancelled:
            return True
        try:
            await asyncio.wait_for(self._get_event().wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True


class Deadline:
    """Absolute time budget shared by consecutive awaits."""

    def __init__(self, seconds: Optional[float]) -> None:
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


async def guarded(
    awaitable: Awaitable[T],
    *,
    token: Optional[CancelToken] = None,
    deadline: Optional[Deadline] = None,
    label: str = "operation",
) -> T:
    """Await ``awaitable`` racing it against a cancel token and a deadline.

    Raises:
        OperationCancelled: If the token fires first
        TimeoutFailure: If the deadline runs out first
    """
    task = asyncio.ensure_future(awaitable)
    timeout = deadline.remaining() if deadline else None
    if token is None and timeout is None:
        return await task

    if token is not None and token.cancelled:
        task.cancel()
        raise OperationCancelled(f"{label} cancelled")

    waiter = asyncio.ensure_future(token.wait()) if token is not None else None
    pending = {task} if waiter is None else {task, waiter}
    try:
        done, _ = await asyncio.wait(pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if waiter is not None and not waiter.done():
            waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    if waiter is not None and waiter in done:
        raise OperationCancelled(f"{label} cancelled")
    raise TimeoutFailure(f"{label} timed out", timeout_s=deadline.seconds if deadline else None)
