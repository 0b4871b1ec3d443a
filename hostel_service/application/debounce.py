"""
Debounced invocation of coroutine functions
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional

from ..config import settings


class Debouncer:
    """
    Delay calls to ``func`` until ``delay`` seconds pass without a new call.

    Each call cancels the pending one, so only the last call in a burst
    runs, with its own arguments.
    """

    def __init__(self, func: Callable[..., Awaitable[Any]], delay: float = settings.SEARCH_DEBOUNCE):
        self.func = func
        self.delay = delay
        self._pending: Optional[asyncio.Task] = None

    def __call__(self, *args, **kwargs) -> asyncio.Task:
        self.cancel()
        self._pending = asyncio.get_running_loop().create_task(self._fire(args, kwargs))
        return self._pending

    async def _fire(self, args, kwargs) -> Any:
        await asyncio.sleep(self.delay)
        # past this point a newer call no longer cancels this one
        self._pending = None
        return await self.func(*args, **kwargs)

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
