"""
RxPY views over event channels.

Wraps a ``Channel`` in a cold ``reactivex.Observable`` so attribute streams
and the global change feed can be composed with the usual operators:

    entity.observe("name").pipe(ops.map(str.upper)).subscribe(print)
"""

from typing import Any, Optional

import reactivex
from reactivex.abc import DisposableBase, ObserverBase, SchedulerBase

from .channel import Channel


def as_observable(channel: Channel) -> reactivex.Observable:
    """Expose ``channel`` as an Observable; each subscription is one listener."""

    def subscribe(
        observer: ObserverBase[Any], scheduler: Optional[SchedulerBase] = None
    ) -> DisposableBase:
        return channel.subscribe(
            observer.on_next, observer.on_error, observer.on_completed
        )

    return reactivex.create(subscribe)
