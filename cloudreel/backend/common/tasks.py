"""Cooperative task helpers: blocking offload, bounded retries and single-flight."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Tuple, Type, TypeVar

from cloudreel.backend.common.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


async def run_blocking(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking callable (HTTP, disk) without stalling the event loop."""

    return await asyncio.to_thread(fn, *args, **kwargs)


@dataclass
class RetrySpec:
    name: str = "task"
    backoff_schedule: Tuple[float, ...] = (1.0, 2.0, 4.0)
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    give_up_on: Tuple[Type[BaseException], ...] = field(default_factory=tuple)

    @property
    def max_attempts(self) -> int:
        return len(self.backoff_schedule) + 1


async def run_with_retries(spec: RetrySpec, fn: Callable[[], Awaitable[T]]) -> T:
    """Await ``fn`` until it succeeds or the fixed backoff schedule is exhausted.

    The last exception is re-raised once every attempt has failed. Exceptions listed in
    ``give_up_on`` propagate immediately.
    """

    attempt = 0
    while True:
        try:
            log.debug("task_start", extra={"task": spec.name, "attempt": attempt})
            result = await fn()
            log.debug("task_done", extra={"task": spec.name, "attempt": attempt})
            return result
        except spec.give_up_on:
            raise
        except spec.retry_on as exc:
            if attempt >= len(spec.backoff_schedule):
                log.error("task_fail", extra={"task": spec.name, "attempt": attempt, "error": str(exc)})
                raise
            sleep_for = spec.backoff_schedule[attempt]
            log.warning(
                "task_retry",
                extra={"task": spec.name, "attempt": attempt, "sleep_for": sleep_for, "error": str(exc)},
            )
            await asyncio.sleep(sleep_for)
            attempt += 1


class SingleFlight(Generic[T]):
    """At most one in-flight operation per key; concurrent callers share its outcome."""

    def __init__(self) -> None:
        self._inflight: Dict[Hashable, "asyncio.Future[T]"] = {}

    def in_flight(self, key: Hashable = None) -> bool:
        return key in self._inflight

    async def run(self, fn: Callable[[], Awaitable[T]], key: Hashable = None) -> T:
        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(fn())
            self._inflight[key] = future
            future.add_done_callback(lambda done, k=key: self._release(k, done))
        # A cancelled waiter must not cancel the shared operation for the others.
        return await asyncio.shield(future)

    def _release(self, key: Hashable, done: "asyncio.Future[T]") -> None:
        if self._inflight.get(key) is done:
            del self._inflight[key]
        if not done.cancelled():
            # Mark the exception as retrieved; every waiter re-raises it on its own.
            done.exception()


__all__ = ["RetrySpec", "SingleFlight", "run_blocking", "run_with_retries"]
