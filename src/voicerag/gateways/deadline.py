"""Bounded-deadline wrapper applied to every outbound provider call."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Protocol, TypeVar

from voicerag.errors import ClientDisconnectedError, UpstreamTimeoutError
from voicerag.metrics.observability import GatewayMetrics, TimedSection, get_logger

T = TypeVar("T")

_logger = get_logger("upstream")


class DisconnectSource(Protocol):
    """Anything that can report whether the HTTP client went away."""

    async def is_disconnected(self) -> bool:
        ...


async def call_with_deadline(
    name: str,
    call: Awaitable[T],
    *,
    timeout: float,
    request: DisconnectSource | None = None,
    poll_interval: float = 0.25,
) -> T:
    """Await ``call`` for at most ``timeout`` seconds.

    The pending call is cancelled when the deadline passes or when ``request``
    reports a client disconnect.
    """

    def record(duration: float, exc: BaseException | None) -> None:
        GatewayMetrics.observe_upstream(name, duration, exc)
        if exc is None:
            _logger.info("upstream.complete", gateway=name, duration_seconds=duration)
        else:
            _logger.warning("upstream.failed", gateway=name, duration_seconds=duration, error=str(exc))

    task = asyncio.ensure_future(call)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    with TimedSection(record):
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise UpstreamTimeoutError(name, timeout)
                done, _ = await asyncio.wait({task}, timeout=min(poll_interval, remaining))
                if task in done:
                    return task.result()
                if request is not None and await request.is_disconnected():
                    raise ClientDisconnectedError(name)
        finally:
            if not task.done():
                task.cancel()
                # Let the cancelled call unwind before its resources are released.
                await asyncio.gather(task, return_exceptions=True)


__all__ = ["DisconnectSource", "call_with_deadline"]
