#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import warnings
from typing import Any, Callable, Optional
from weakref import WeakSet


class EventSource:
    """Base class for components that notify observers.

    Observers are held weakly. An event `<type>` is delivered by
    calling the observer's `on_<type>` method, if it has one.
    An observer raising an exception is reported as a warning and
    never prevents delivery to the other observers.
    """

    def __init__(self):
        self._observers: WeakSet[Any] = WeakSet()

    def register(self, observer: Any):
        self._observers.add(observer)

    def unregister(self, observer: Any):
        self._observers.discard(observer)

    def _emit(self, event_type: str, *event_args: Any):
        for observer in list(self._observers):
            method: Optional[Callable[..., None]] = getattr(
                observer, f"on_{event_type}", None
            )
            if method is None:
                continue
            try:
                method(*event_args)
            except Exception as e:
                warnings.warn(f"Error emitting event of type {event_type!r}: {e}")
