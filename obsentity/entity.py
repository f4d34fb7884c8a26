"""
Observable Entity
=================

Change notifications for individual attributes of an entity record.

``ObservableEntity`` wraps exactly one record and never copies it: the record
stays usable anywhere a plain record is expected, and ``entity.record`` hands
back the very same object. Three feeds report changes, all built on
``Channel``:

- **on-change callbacks** (``add_on_change``): zero-argument callbacks per
  attribute. Keys are case-insensitive. Only tracked keys fire.
- **attribute streams** (``observe``): a ``reactivex.Observable`` per
  attribute that replays the latest non-None value to each new subscriber and
  then delivers every later write. Every write feeds its stream, observed or
  not.
- **global change feed** (``subscribe`` / ``changes``): ``(key, value)`` pairs
  for every successful try-operation (``try_get_or_add``, ``try_update``,
  ``try_add_or_update``, ``try_delete`` and their ``_many`` forms). A delete
  is reported with a ``None`` value.

For each write the record is updated first, then on-change callbacks run,
then the attribute stream, then (for try-operations) the global feed. All of
it happens synchronously on the caller's thread before the write returns.

Nothing here is thread-safe. Share an ObservableEntity across threads only
behind external synchronization.

Usage:
    account = create(Entity("account", attributes={"int1": 10, "int2": 20}))

    def recompute():
        account["int3"] = account.get("int1", int, 0) * account.get("int2", int, 0)

    account.add_on_change("int1", recompute)
    account["int1"] = 3                    # recompute() runs, int3 == 60

    account.observe("int3").subscribe(print)   # prints 60 immediately

    account.subscribe(lambda change: print(change.key, change.value))
    account.try_add_or_update_many(["a", "b"], [1, 2])   # ("a", 1), ("b", 2)
"""

import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    Type,
    Union,
)

import reactivex
from reactivex.abc import DisposableBase, ObserverBase, SchedulerBase

from . import operations
from .channel import Channel, ChannelRegistry, raise_for_errors
from .operations import ValueFactory
from .record import Entity, Record
from .streams import as_observable


class AttributeTypeError(TypeError):
    """A strictly typed read found a value of the wrong type."""

    def __init__(self, key: str, expected: Type, value: Any):
        self.key = key
        self.expected = expected
        self.value = value
        super().__init__(
            f"Attribute '{key}' holds {type(value).__name__}, "
            f"expected {getattr(expected, '__name__', expected)}"
        )


class AttributeChange(NamedTuple):
    """One entry of the global change feed."""

    key: str
    value: Any


def _fold(key: Any) -> Any:
    return key.casefold() if isinstance(key, str) else key


def _is_present(value: Any) -> bool:
    return value is not None


def _matches(value: Any, type_: Type) -> bool:
    # bool is an int subclass, but a flag is not a number
    if isinstance(value, bool) and type_ is int:
        return False
    return isinstance(value, type_)


def _noop(*args: Any) -> None:
    pass


class ObservableEntity:
    """
    A record wrapper that reports attribute changes.

    Args:
        record: The record to wrap (a new empty ``Entity`` when None)
        isolate_errors: Keep delivering to remaining subscribers when one
            raises, then raise a single ``CallbackError``. When False the
            first failure propagates immediately.
        strict: Reject missing keys, missing callbacks and None callbacks in
            ``add_on_change`` with ``ValueError`` instead of ignoring them
    """

    def __init__(
        self,
        record: Optional[Record] = None,
        *,
        isolate_errors: bool = True,
        strict: bool = False,
    ):
        if record is None:
            record = Entity()
        elif not isinstance(record, Record):
            raise TypeError(
                f"{type(record).__name__} does not implement get/set/contains/remove/keys"
            )

        self._record = record
        self.isolate_errors = isolate_errors
        self.strict = strict

        self._on_change = ChannelRegistry(normalize=_fold, isolate_errors=isolate_errors)
        self._streams = ChannelRegistry(
            replay=True, predicate=_is_present, isolate_errors=isolate_errors
        )
        self._feed = Channel(None, isolate_errors=isolate_errors)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_record(
        cls, record: Union[Record, Dict[str, Any], None], **options: Any
    ) -> "ObservableEntity":
        """Wrap an existing record. A plain dict is wrapped in place."""
        if isinstance(record, dict):
            record = Entity(attributes=record)
        return cls(record, **options)

    @classmethod
    def from_name(cls, logical_name: Optional[str], **options: Any) -> "ObservableEntity":
        """Wrap a new, empty ``Entity`` with the given logical name."""
        return cls(Entity(logical_name), **options)

    @property
    def record(self) -> Record:
        """The wrapped record itself, not a copy."""
        return self._record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        return self._record.get(key) if self._record.contains(key) else None

    def get(self, key: str, type_: Optional[Type] = None, default: Any = None) -> Any:
        """
        Lenient typed read.

        Returns the attribute value, or ``default`` when the attribute is
        missing or is not an instance of ``type_``. ``bool`` values do not
        satisfy ``int``.
        """
        if not self._record.contains(key):
            return default
        value = self._record.get(key)
        if type_ is not None and not _matches(value, type_):
            return default
        return value

    def get_value(self, key: str, type_: Optional[Type] = None) -> Any:
        """
        Strict typed read.

        Raises:
            KeyError: The attribute is not set
            AttributeTypeError: The value is not an instance of ``type_``
        """
        if not self._record.contains(key):
            raise KeyError(key)
        value = self._record.get(key)
        if type_ is not None and not _matches(value, type_):
            raise AttributeTypeError(key, type_, value)
        return value

    def keys(self) -> List[str]:
        return list(self._record.keys())

    def __contains__(self, key: Any) -> bool:
        return self._record.contains(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._record.keys())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def __setitem__(self, key: str, value: Any) -> None:
        tracked = self._on_change.get(key)
        self._record.set(key, value)
        raise_for_errors(self._publish(key, value, tracked), key)

    def __delitem__(self, key: str) -> None:
        tracked = self._on_change.get(key)
        if not operations.delete(self._record, key):
            raise KeyError(key)
        raise_for_errors(self._publish(key, None, tracked), key)

    def set_value(self, key: str, value: Any) -> "ObservableEntity":
        """Write an attribute and return self for chaining."""
        self[key] = value
        return self

    def set_attributes(self, attributes: Dict[str, Any]) -> "ObservableEntity":
        """
        Write every pair of ``attributes``, in order, as indexer writes would.

        Keys not in ``attributes`` are left alone. Each pair runs its on-change
        callbacks and feeds its stream before the next pair is written; listener
        failures are raised together once all pairs are written.
        """
        errors: List[Exception] = []
        for key, value in attributes.items():
            tracked = self._on_change.get(key)
            self._record.set(key, value)
            errors.extend(self._publish(key, value, tracked))
        raise_for_errors(errors)
        return self

    def _publish(self, key: str, value: Any, tracked: Optional[Channel]) -> List[Exception]:
        errors: List[Exception] = []
        if tracked is not None:
            errors.extend(tracked.emit(raise_errors=False))

        stream = self._streams.get(key)
        if stream is not None:
            errors.extend(stream.emit(value, raise_errors=False))
        elif value is not None:
            self._streams.ensure(key, value)
        return errors

    def _notify(self, key: str, value: Any, tracked: Optional[Channel]) -> List[Exception]:
        errors = self._publish(key, value, tracked)
        errors.extend(self._feed.emit(AttributeChange(key, value), raise_errors=False))
        return errors

    def _collector(self, errors: List[Exception]) -> Callable[[str, Any], None]:
        def on_change(key: str, value: Any) -> None:
            errors.extend(self._notify(key, value, self._on_change.get(key)))

        return on_change

    def _guard(self, factory: Optional[ValueFactory]) -> Optional[ValueFactory]:
        """Report factory failures to the global feed before they propagate."""
        if factory is None:
            return None

        def guarded(key: str) -> Any:
            try:
                return factory(key)
            except Exception as e:
                self._feed.error(e, raise_errors=False)
                raise

        return guarded

    # ------------------------------------------------------------------
    # Try-operations
    # ------------------------------------------------------------------

    def try_get_or_add(
        self, key: str, value: Any = None, *, factory: Optional[ValueFactory] = None
    ) -> Any:
        """
        Return the attribute, adding ``value`` (or ``factory(key)``) if missing.

        The resulting value is always reported to the global feed. On-change
        callbacks and the attribute stream only fire when the value was added.
        """
        tracked = self._on_change.get(key)
        current, added = operations.get_or_add(self._record, key, value, self._guard(factory))
        if added:
            errors = self._notify(key, current, tracked)
        else:
            errors = self._feed.emit(AttributeChange(key, current), raise_errors=False)
        raise_for_errors(errors, key)
        return current

    def try_update(
        self, key: str, value: Any = None, *, factory: Optional[ValueFactory] = None
    ) -> bool:
        """Overwrite an existing attribute. False (and no write) when missing."""
        tracked = self._on_change.get(key)
        updated = operations.update(self._record, key, value, self._guard(factory))
        if updated:
            raise_for_errors(self._notify(key, self._record.get(key), tracked), key)
        return updated

    def try_add_or_update(
        self, key: str, value: Any = None, *, factory: Optional[ValueFactory] = None
    ) -> bool:
        """Write an attribute. True if it was added, False if overwritten."""
        tracked = self._on_change.get(key)
        added = operations.add_or_update(self._record, key, value, self._guard(factory))
        raise_for_errors(self._notify(key, self._record.get(key), tracked), key)
        return added

    def try_delete(self, key: str) -> bool:
        """Remove an attribute. False when it was not set."""
        return self.try_pop(key)[0]

    def try_pop(self, key: str, default: Any = None) -> Tuple[bool, Any]:
        """Remove an attribute, returning ``(removed, removed_value)``."""
        tracked = self._on_change.get(key)
        removed, value = operations.pop(self._record, key, default)
        if removed:
            raise_for_errors(self._notify(key, None, tracked), key)
        return removed, value

    def try_get_or_add_many(
        self,
        keys: Sequence[str],
        values: Optional[Sequence[Any]] = None,
        *,
        factory: Optional[ValueFactory] = None,
    ) -> List[Any]:
        """Batch ``try_get_or_add``. Every processed key is reported."""
        errors: List[Exception] = []
        results = []
        for key, value, key_factory in operations.iter_pairs(keys, values, self._guard(factory)):
            tracked = self._on_change.get(key)
            current, added = operations.get_or_add(self._record, key, value, key_factory)
            if added:
                errors.extend(self._notify(key, current, tracked))
            else:
                errors.extend(self._feed.emit(AttributeChange(key, current), raise_errors=False))
            results.append(current)
        raise_for_errors(errors)
        return results

    def try_update_many(
        self,
        keys: Sequence[str],
        values: Optional[Sequence[Any]] = None,
        *,
        factory: Optional[ValueFactory] = None,
    ) -> List[bool]:
        """Batch ``try_update``. Only overwritten keys are reported."""
        errors: List[Exception] = []
        results = operations.update_many(
            self._record, keys, values, self._guard(factory), self._collector(errors)
        )
        raise_for_errors(errors)
        return results

    def try_add_or_update_many(
        self,
        keys: Sequence[str],
        values: Optional[Sequence[Any]] = None,
        *,
        factory: Optional[ValueFactory] = None,
    ) -> List[bool]:
        """Batch ``try_add_or_update``. Every processed key is reported."""
        errors: List[Exception] = []
        results = operations.add_or_update_many(
            self._record, keys, values, self._guard(factory), self._collector(errors)
        )
        raise_for_errors(errors)
        return results

    def try_delete_many(self, keys: Sequence[str]) -> List[bool]:
        """Batch ``try_delete``. Removed keys are reported with None."""
        errors: List[Exception] = []
        results = operations.delete_many(self._record, keys, self._collector(errors))
        raise_for_errors(errors)
        return results

    # ------------------------------------------------------------------
    # On-change callbacks
    # ------------------------------------------------------------------

    def add_on_change(self, key: str, *callbacks: Callable[[], Any]) -> None:
        """
        Run ``callbacks`` (in order) after every write to ``key``.

        Calling this again for the same key appends to the existing list.
        """
        if key is None:
            if self.strict:
                raise ValueError("add_on_change requires a key")
            return

        accepted = []
        for callback in callbacks:
            if callback is None:
                if self.strict:
                    raise ValueError(f"None callback for '{key}'")
                continue
            if not callable(callback):
                raise TypeError(f"Callback for '{key}' is not callable: {callback!r}")
            accepted.append(callback)

        if not accepted:
            if self.strict:
                raise ValueError(f"add_on_change('{key}') requires at least one callback")
            return

        channel = self._on_change.ensure(key)
        for callback in accepted:
            channel.subscribe(callback)
        logging.debug(f"Tracking '{key}' with {channel.listener_count} callback(s)")

    def remove_on_change(self, key: str) -> bool:
        """Forget every callback registered for ``key``."""
        if key is None:
            return False
        removed = self._on_change.drop(key)
        if removed:
            logging.debug(f"Stopped tracking '{key}'")
        return removed

    def is_tracked(self, key: str) -> bool:
        return key is not None and key in self._on_change

    @property
    def tracked_keys(self) -> List[str]:
        return self._on_change.keys()

    def invoke_on_change(self, key: str) -> bool:
        """Run the callbacks for ``key`` without writing. False if untracked."""
        channel = self._on_change.get(key) if key is not None else None
        if channel is None:
            return False
        channel.emit()
        return True

    def invoke_all_on_change(self) -> None:
        """Run the callbacks of every tracked key currently set on the record."""
        errors: List[Exception] = []
        for key in self._record.keys():
            channel = self._on_change.get(key)
            if channel is not None:
                errors.extend(channel.emit(raise_errors=False))
        raise_for_errors(errors)

    # ------------------------------------------------------------------
    # Streams and the global feed
    # ------------------------------------------------------------------

    def observe(self, key: str) -> reactivex.Observable:
        """Latest-value stream of one attribute. None values are never emitted."""
        return as_observable(self._streams.ensure(key))

    def subscribe(
        self,
        on_next: Union[Callable[[AttributeChange], Any], ObserverBase, None] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
        on_completed: Optional[Callable[[], Any]] = None,
    ) -> DisposableBase:
        """
        Receive an ``AttributeChange`` for every successful try-operation.

        ``on_next`` may also be an observer object. Dispose the returned
        handle to stop receiving changes.
        """
        if hasattr(on_next, "on_next"):
            observer = on_next
            return self._feed.subscribe(
                observer.on_next, observer.on_error, observer.on_completed
            )
        return self._feed.subscribe(on_next or _noop, on_error, on_completed)

    @property
    def changes(self) -> reactivex.Observable:
        """The global change feed as an Observable."""

        def subscribe(
            observer: ObserverBase[Any], scheduler: Optional[SchedulerBase] = None
        ) -> DisposableBase:
            return self.subscribe(observer)

        return reactivex.create(subscribe)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """
        Complete every stream and the global feed, and drop all callbacks.

        The wrapper (and its record) stays usable; later subscriptions start
        from a clean slate.
        """
        errors = self._streams.complete_all()
        errors.extend(self._feed.complete(raise_errors=False))
        self._feed = Channel(None, isolate_errors=self.isolate_errors)
        for key in self._on_change.keys():
            self._on_change.drop(key)
        logging.debug("Closed observable entity")
        raise_for_errors(errors)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self):
        return f"ObservableEntity({self._record!r}, tracked={self.tracked_keys!r})"


def create(
    source: Union[Record, Dict[str, Any], str, None] = None, **options: Any
) -> ObservableEntity:
    """
    Create an observable entity from a record, a dict or a logical name.

    Args:
        source: Record or dict to wrap in place, or a logical name for a new
            empty ``Entity``
        **options: ``isolate_errors`` / ``strict``, see ``ObservableEntity``
    """
    if source is None or isinstance(source, str):
        return ObservableEntity.from_name(source, **options)
    return ObservableEntity.from_record(source, **options)
