"""Cooperative cancellation helpers.

Every public operation accepts an optional ``cancel`` event in addition to
regular asyncio task cancellation. Loops check it before each unit of work
and pass it down to the completion service so in-flight calls can observe it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


def raise_if_cancelled(cancel: asyncio.Event | None) -> None:
    """Raise ``asyncio.CancelledError`` if the cancel event is set."""
    if cancel is not None and cancel.is_set():
        raise asyncio.CancelledError("operation cancelled")


async def await_cancellable(awaitable: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """Await ``awaitable`` but abandon it as soon as ``cancel`` is set."""
    if cancel is None:
        return await awaitable

    raise_if_cancelled(cancel)
    call = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        call.cancel()
        raise
    finally:
        waiter.cancel()

    if call in done:
        return call.result()

    call.cancel()
    raise asyncio.CancelledError("operation cancelled")
