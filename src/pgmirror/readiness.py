"""Single-fire readiness signal."""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from typing import Any


class ReadySignal:
    """One-shot broadcast: unready → ready, exactly once, never reset.

    Any number of coroutines may wait. Waiters that arrive before
    :meth:`fire` block until it is called; waiters that arrive after it
    return immediately. The signal is itself awaitable::

        signal = await mirror.init(collection)
        await signal  # returns at once, init already finished

    If ``init`` fails the signal never fires. Waiters that cannot rely on
    ``init``'s own exception should pass ``timeout`` to :meth:`wait`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_ready(self) -> bool:
        return self._event.is_set()

    def fire(self) -> bool:
        """Mark ready. Returns False if the signal had already fired."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    async def wait(self, timeout: float | None = None) -> None:
        """Block until ready.

        Raises:
            asyncio.TimeoutError: ``timeout`` elapsed first.
        """
        if self._event.is_set():
            return
        if timeout is None:
            await self._event.wait()
        else:
            await asyncio.wait_for(self._event.wait(), timeout)

    def __await__(self) -> Generator[Any, None, ReadySignal]:
        yield from self.wait().__await__()
        return self

    def __repr__(self) -> str:
        return f"ReadySignal(ready={self.is_ready})"


__all__ = ["ReadySignal"]
