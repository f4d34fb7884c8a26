"""
Event Channels
==============

A single notification primitive shared by every change feed of an observable
entity:

- on-change callbacks: one plain channel per tracked attribute, emitting no
  payload
- attribute streams: one replay channel per attribute that remembers the
  latest value and hands it to each new subscriber
- the global change feed: one plain channel emitting ``(key, value)`` pairs

Delivery is synchronous and ordered by subscription. A failing listener never
stops delivery to the others: failures are logged, collected, and raised
together as one ``CallbackError`` once every listener has run. Channels built
with ``isolate_errors=False`` let the first failure propagate instead.

Channels are not thread-safe; callers sharing one across threads must
synchronize externally.
"""

import logging
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from reactivex.abc import DisposableBase

_ABSENT = object()


class CallbackError(Exception):
    """One or more subscribers raised while a change was being delivered."""

    def __init__(self, errors: List[Exception], key: Optional[Hashable] = None):
        self.errors = list(errors)
        self.key = key
        target = f" for '{key}'" if key is not None else ""
        super().__init__(
            f"{len(self.errors)} subscriber(s) failed{target}: "
            + "; ".join(repr(e) for e in self.errors)
        )


def raise_for_errors(errors: List[Exception], key: Optional[Hashable] = None) -> None:
    """Raise a single ``CallbackError`` wrapping ``errors``, if any."""
    if not errors:
        return
    if len(errors) == 1 and isinstance(errors[0], CallbackError):
        raise errors[0]

    flattened: List[Exception] = []
    for error in errors:
        if isinstance(error, CallbackError):
            flattened.extend(error.errors)
        else:
            flattened.append(error)
    raise CallbackError(flattened, key) from flattened[0]


class Subscription(DisposableBase):
    """
    Handle for one listener on a channel.

    Disposing removes exactly this listener. Disposing twice is harmless.
    """

    __slots__ = ("_channel", "on_next", "on_error", "on_completed", "active")

    def __init__(
        self,
        channel: "Channel",
        on_next: Callable[..., Any],
        on_error: Optional[Callable[[Exception], Any]] = None,
        on_completed: Optional[Callable[[], Any]] = None,
    ):
        self._channel: Optional[Channel] = channel
        self.on_next = on_next
        self.on_error = on_error
        self.on_completed = on_completed
        self.active = True

    def dispose(self) -> None:
        if not self.active:
            return
        self.active = False
        channel, self._channel = self._channel, None
        if channel is not None:
            channel._remove(self)


class Channel:
    """
    Ordered, synchronous fan-out of payloads to listeners.

    Args:
        key: Name used in error messages and logs
        replay: Remember the latest payload and deliver it to new subscribers
        predicate: Payloads for which this returns False are not delivered
            (they still replace the remembered payload)
        isolate_errors: Collect listener failures instead of failing fast

    Usage:
        channel = Channel("name", replay=True, predicate=lambda v: v is not None)
        channel.emit("Alice")
        sub = channel.subscribe(print)   # prints "Alice" right away
        channel.emit("Bob")              # prints "Bob"
        sub.dispose()
    """

    def __init__(
        self,
        key: Optional[Hashable] = None,
        *,
        replay: bool = False,
        predicate: Optional[Callable[..., bool]] = None,
        isolate_errors: bool = True,
    ):
        self.key = key
        self.replay = replay
        self.predicate = predicate
        self.isolate_errors = isolate_errors
        self._listeners: List[Subscription] = []
        self._latest: Any = _ABSENT
        self._completed = False

    @property
    def has_listeners(self) -> bool:
        return bool(self._listeners)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def is_completed(self) -> bool:
        return self._completed

    @property
    def latest(self) -> Optional[Tuple[Any, ...]]:
        """The remembered payload if it would be delivered, otherwise None."""
        if self._latest is _ABSENT or not self._accepts(self._latest):
            return None
        return self._latest

    def _accepts(self, payload: Tuple[Any, ...]) -> bool:
        return self.predicate is None or bool(self.predicate(*payload))

    def subscribe(
        self,
        on_next: Callable[..., Any],
        on_error: Optional[Callable[[Exception], Any]] = None,
        on_completed: Optional[Callable[[], Any]] = None,
    ) -> Subscription:
        """Add a listener; replay channels deliver their latest payload now."""
        subscription = Subscription(self, on_next, on_error, on_completed)

        if self._completed:
            subscription.active = False
            if on_completed is not None:
                on_completed()
            return subscription

        self._listeners.append(subscription)

        payload = self.latest if self.replay else None
        if payload is not None:
            try:
                raise_for_errors(self._deliver([subscription], payload), self.key)
            except Exception:
                # a subscriber that fails its replay is never handed the handle
                subscription.dispose()
                raise

        return subscription

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._listeners.remove(subscription)
        except ValueError:
            pass

    def emit(self, *payload: Any, raise_errors: bool = True) -> List[Exception]:
        """
        Deliver ``payload`` to every current listener.

        The listener list is captured before delivery starts. Listeners
        subscribed or disposed during delivery only see the change on the
        next emit; every captured listener runs for this payload.

        Returns:
            The collected listener failures when ``raise_errors`` is False
        """
        if self._completed:
            return []

        if self.replay:
            self._latest = payload

        if not self._accepts(payload):
            return []

        errors = self._deliver(list(self._listeners), payload)
        if raise_errors:
            raise_for_errors(errors, self.key)
        return errors

    def _deliver(
        self, listeners: List[Subscription], payload: Tuple[Any, ...]
    ) -> List[Exception]:
        errors: List[Exception] = []
        for subscription in listeners:
            try:
                subscription.on_next(*payload)
            except Exception as e:
                if not self.isolate_errors:
                    raise
                logging.error(f"Error in subscriber for {self.key!r}: {e}")
                errors.append(e)
        return errors

    def error(self, exc: Exception, raise_errors: bool = True) -> List[Exception]:
        """Forward ``exc`` to listeners that registered an error handler."""
        errors: List[Exception] = []
        for subscription in list(self._listeners):
            if not subscription.active or subscription.on_error is None:
                continue
            try:
                subscription.on_error(exc)
            except Exception as e:
                if not self.isolate_errors:
                    raise
                logging.error(f"Error in error handler for {self.key!r}: {e}")
                errors.append(e)
        if raise_errors:
            raise_for_errors(errors, self.key)
        return errors

    def complete(self, raise_errors: bool = True) -> List[Exception]:
        """Signal completion and close the channel."""
        if self._completed:
            return []
        self._completed = True

        listeners, self._listeners = self._listeners, []
        errors: List[Exception] = []
        for subscription in listeners:
            if not subscription.active:
                continue
            subscription.active = False
            if subscription.on_completed is None:
                continue
            try:
                subscription.on_completed()
            except Exception as e:
                if not self.isolate_errors:
                    raise
                logging.error(f"Error in completion handler for {self.key!r}: {e}")
                errors.append(e)
        if raise_errors:
            raise_for_errors(errors, self.key)
        return errors

    def clear(self) -> None:
        """Drop every listener without notifying them."""
        for subscription in self._listeners:
            subscription.active = False
        self._listeners = []

    def __repr__(self):
        return f"Channel({self.key!r}, listeners={len(self._listeners)}, replay={self.replay})"


class ChannelRegistry:
    """
    Per-key channels created on demand.

    Args:
        normalize: Applied to keys before lookup (e.g. ``str.casefold`` for
            case-insensitive keys). The first spelling seen is kept as the
            channel's key.
        **channel_options: Passed to every ``Channel`` the registry creates
    """

    def __init__(self, normalize: Optional[Callable[[str], Hashable]] = None, **channel_options):
        self._normalize = normalize
        self._channel_options = channel_options
        self._channels: Dict[Hashable, Channel] = {}

    def _slot(self, key: Hashable) -> Hashable:
        return self._normalize(key) if self._normalize is not None else key

    def get(self, key: Hashable) -> Optional[Channel]:
        return self._channels.get(self._slot(key))

    def ensure(self, key: Hashable, *initial_payload: Any) -> Channel:
        """
        Return the channel for ``key``, creating it if needed.

        A newly created replay channel starts with ``initial_payload`` as its
        remembered payload when one is given.
        """
        slot = self._slot(key)
        channel = self._channels.get(slot)
        if channel is None:
            channel = Channel(key, **self._channel_options)
            if initial_payload and channel.replay:
                channel._latest = initial_payload
            self._channels[slot] = channel
        return channel

    def drop(self, key: Hashable) -> bool:
        """Remove the channel for ``key`` and its listeners."""
        channel = self._channels.pop(self._slot(key), None)
        if channel is None:
            return False
        channel.clear()
        return True

    def keys(self) -> List[Hashable]:
        return [channel.key for channel in self._channels.values()]

    def complete_all(self) -> List[Exception]:
        """Complete every channel and forget them, collecting failures."""
        errors: List[Exception] = []
        channels, self._channels = self._channels, {}
        for channel in channels.values():
            errors.extend(channel.complete(raise_errors=False))
        return errors

    def __contains__(self, key: Hashable) -> bool:
        return self._slot(key) in self._channels

    def __len__(self) -> int:
        return len(self._channels)
