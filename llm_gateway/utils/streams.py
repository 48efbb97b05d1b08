"""Async stream helpers: pull-reader adaptation and abortable awaits."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Optional, Protocol, TypeVar

from llm_gateway.errors import AbortedError

logger = logging.getLogger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


@dataclass(frozen=True, slots=True)
class ReadResult(Generic[T]):
    done: bool
    value: Optional[T] = None


class ChunkReader(Protocol[T_co]):
    """Pull-based source: ``read`` returns the next value or ``done``."""

    async def read(self) -> ReadResult[T_co]: ...

    async def release(self) -> None: ...


class StreamAdapter(Generic[T]):
    """Expose a :class:`ChunkReader` as a forward-only async iterator.

    The reader is released exactly once: when it reports ``done``, when a read
    raises, or when the consumer closes the adapter early (``aclose`` or
    leaving ``async with``). Once released the adapter stays exhausted.
    """

    def __init__(self, reader: ChunkReader[T]) -> None:
        self._reader = reader
        self._released = False

    def __aiter__(self) -> "StreamAdapter[T]":
        return self

    async def __anext__(self) -> T:
        if self._released:
            raise StopAsyncIteration
        try:
            result = await self._reader.read()
        except BaseException:
            await self.aclose()
            raise
        if result.done:
            await self.aclose()
            raise StopAsyncIteration
        return result.value  # type: ignore[return-value]

    async def aclose(self) -> None:
        if self._released:
            return
        self._released = True
        await self._reader.release()

    @property
    def released(self) -> bool:
        return self._released

    async def __aenter__(self) -> "StreamAdapter[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


async def race_abort(awaitable: Awaitable[T], abort: Optional[asyncio.Event]) -> T:
    """Await ``awaitable`` unless ``abort`` fires first.

    When the abort signal wins, the pending operation is cancelled and
    :class:`AbortedError` is raised.
    """

    if abort is None:
        return await awaitable
    if abort.is_set():
        _discard(awaitable)
        raise AbortedError()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(abort.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:  # pragma: no cover - failure racing the cancellation
        logger.debug("Operation failed while being aborted", exc_info=True)
    raise AbortedError()


def _discard(awaitable: Any) -> None:
    close = getattr(awaitable, "close", None)
    if asyncio.iscoroutine(awaitable) and close is not None:
        close()
