"""
Lazily-initialized, single-flight resource handles.

The document engine and the mail channel are expensive to set up and are
reused across invocations. The first caller starts initialization; concurrent
callers await the same in-flight setup. A failed setup is not cached, so the
next caller tries again.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from leadkit.config.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ResourceHandle(Generic[T]):
    """Owns one lazily created resource and its shutdown."""

    def __init__(
        self,
        name: str,
        factory: Callable[[], Awaitable[T]],
        closer: Callable[[T], Awaitable[None]] | None = None,
    ):
        self.name = name
        self._factory = factory
        self._closer = closer
        self._pending: asyncio.Future[T] | None = None
        self._value: T | None = None
        self._ready = False
        self.init_count = 0

    @property
    def initialized(self) -> bool:
        return self._ready

    async def get(self) -> T:
        if self._ready:
            return self._value  # type: ignore[return-value]

        if self._pending is None:
            self.init_count += 1
            logger.info("Initializing resource", resource=self.name)
            self._pending = asyncio.ensure_future(self._factory())

        pending = self._pending
        try:
            value = await asyncio.shield(pending)
        except Exception:
            if self._pending is pending:
                self._pending = None
            raise

        if self._pending is pending:
            self._value = value
            self._ready = True
        return value

    async def reset(self) -> None:
        """Drop the resource so the next ``get`` creates a fresh one."""
        pending, value, ready = self._pending, self._value, self._ready
        self._pending = None
        self._value = None
        self._ready = False

        if not ready and pending is not None and pending.done() and not pending.cancelled():
            if pending.exception() is None:
                value, ready = pending.result(), True

        if ready and self._closer is not None:
            try:
                await self._closer(value)  # type: ignore[arg-type]
            except Exception:
                logger.warning("Resource close failed", resource=self.name, exc_info=True)
        elif pending is not None and not pending.done():
            pending.cancel()
