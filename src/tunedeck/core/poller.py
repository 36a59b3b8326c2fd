#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, TypeAlias

LOG = logging.getLogger(__name__)

PollCallback: TypeAlias = Callable[[], Awaitable[Any] | Any]


class Poller:
    """Invokes a callback repeatedly at a fixed interval.

    A poller is one logical subscription, for example "job list" or
    "GPU status". It owns at most one running timer: `start()` on a
    running poller first stops the current timer.

    Ticks are issued at a fixed rate and each tick runs as its own
    task, so a slow callback does not delay the next tick. Callers
    that must not overlap combine the poller with a
    [FetchGuard][tunedeck.core.guard.FetchGuard].

    Errors raised by the callback are logged and swallowed; a failing
    tick never ends the loop. Only `stop()` does.

    Every `start()` and `stop()` increments `generation`. A subscriber
    records the generation when it issues a request and checks
    `is_current()` before applying the response, so responses arriving
    after the subscription was stopped or restarted are discarded.

    Args:
        name: Subscription name, used in log messages.
    """

    def __init__(self, name: str):
        self.name = name
        self._generation = 0
        self._timer: Optional[asyncio.Task] = None
        self._ticks: set[asyncio.Task] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def start(
        self, callback: PollCallback, interval: float, immediate: bool = False
    ) -> int:
        """Start invoking `callback` every `interval` seconds.

        Must be called from within a running event loop.

        Args:
            callback: A function or coroutine function without arguments.
            interval: Interval in seconds.
            immediate: Whether to invoke `callback` right away
                instead of only after the first interval has elapsed.

        Returns:
            The generation of the new subscription.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.stop()
        self._generation += 1
        loop = asyncio.get_running_loop()
        self._timer = loop.create_task(
            self._run(callback, interval, immediate), name=f"poller:{self.name}"
        )
        LOG.debug("Started poller %r every %ss", self.name, interval)
        return self._generation

    def stop(self):
        """Stop ticking. Safe to call any number of times.

        Ticks already in flight are not cancelled; use `generation`
        to discard their results.
        """
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        self._generation += 1
        LOG.debug("Stopped poller %r", self.name)

    def restart(
        self, callback: PollCallback, interval: float, immediate: bool = False
    ) -> int:
        """Same as `stop()` followed by `start()`."""
        self.stop()
        return self.start(callback, interval, immediate=immediate)

    async def wait_idle(self):
        """Wait until all ticks in flight have settled."""
        while self._ticks:
            await asyncio.gather(*list(self._ticks), return_exceptions=True)

    async def _run(self, callback: PollCallback, interval: float, immediate: bool):
        if immediate:
            self._spawn(callback)
        while True:
            await asyncio.sleep(interval)
            self._spawn(callback)

    def _spawn(self, callback: PollCallback):
        task = asyncio.ensure_future(self._invoke(callback))
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _invoke(self, callback: PollCallback):
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            LOG.warning(
                "Poll %r failed: %s",
                self.name,
                e,
                exc_info=LOG.isEnabledFor(logging.DEBUG),
            )
