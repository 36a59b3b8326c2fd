#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import logging
from typing import Any, Awaitable, Callable, Final, TypeVar

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class _Suppressed:
    def __repr__(self) -> str:
        return "SUPPRESSED"


SUPPRESSED: Final = _Suppressed()
"""Returned by `FetchGuard.with_guard()` if the key is already in flight."""


class FetchGuard:
    """Prevents overlapping fetches for the same logical resource.

    A key is in flight from the moment `with_guard()` invokes the fetch
    function until the returned awaitable settles, successfully or not.
    A second `with_guard()` for a key in flight does not call the function;
    it is neither queued nor retried.

    All state is touched from the event loop thread only.
    """

    def __init__(self):
        self._in_flight: set[str] = set()

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def with_guard(
        self,
        key: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T | _Suppressed:
        """Invoke `fn(*args, **kwargs)` unless `key` is in flight.

        Returns:
            The result of `fn`, or `SUPPRESSED` if the call was skipped.
        """
        if key in self._in_flight:
            LOG.debug("Suppressed duplicate fetch for %r", key)
            return SUPPRESSED
        self._in_flight.add(key)
        try:
            return await fn(*args, **kwargs)
        finally:
            self._in_flight.discard(key)
