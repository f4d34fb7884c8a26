"""
Mutation Primitives
===================

Try-style mutations over any ``Record``, plus their batch forms.

Each scalar primitive reports whether the record actually changed instead of
raising when the key is in the "wrong" state: updating or deleting a missing
attribute is a no-op, not an error. Values may be given directly or produced
by a ``factory(key)`` that is only called when its result is written.

The batch forms walk ``keys`` together with ``values`` (or the factory) in
input order and call ``on_change(key, value)`` after each qualifying outcome,
before moving on to the next key. When ``keys`` and ``values`` differ in
length only the shorter prefix is processed.
"""

from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from .record import Record

ValueFactory = Callable[[str], Any]
ChangeHook = Callable[[str, Any], None]


def _resolve(key: str, value: Any, factory: Optional[ValueFactory]) -> Any:
    return factory(key) if factory is not None else value


def _check_source(value: Any, factory: Optional[ValueFactory]) -> None:
    if factory is not None and value is not None:
        raise ValueError("Pass either a value or a factory, not both")


def get_or_add(
    record: Record,
    key: str,
    value: Any = None,
    factory: Optional[ValueFactory] = None,
) -> Tuple[Any, bool]:
    """
    Return the existing value for ``key``, adding it first if missing.

    Returns:
        ``(value, added)`` where ``value`` is the existing value when the key
        was present, or the newly written one when it was not
    """
    _check_source(value, factory)
    if record.contains(key):
        return record.get(key), False

    new_value = _resolve(key, value, factory)
    record.set(key, new_value)
    return new_value, True


def update(
    record: Record,
    key: str,
    value: Any = None,
    factory: Optional[ValueFactory] = None,
) -> bool:
    """Overwrite ``key`` only if it already exists. True if a write happened."""
    _check_source(value, factory)
    if not record.contains(key):
        return False

    record.set(key, _resolve(key, value, factory))
    return True


def add_or_update(
    record: Record,
    key: str,
    value: Any = None,
    factory: Optional[ValueFactory] = None,
) -> bool:
    """
    Always write ``key``.

    Returns:
        True if the key was added, False if an existing value was overwritten
    """
    _check_source(value, factory)
    existed = record.contains(key)
    record.set(key, _resolve(key, value, factory))
    return not existed


def delete(record: Record, key: str) -> bool:
    """Remove ``key`` if present. True if a removal happened."""
    if not record.contains(key):
        return False
    return record.remove(key)


def pop(record: Record, key: str, default: Any = None) -> Tuple[bool, Any]:
    """Remove ``key`` if present, returning ``(removed, removed_value)``."""
    if not record.contains(key):
        return False, default

    value = record.get(key)
    return record.remove(key), value


# ============================================================================
# BATCH FORMS
# ============================================================================


def iter_pairs(
    keys: Iterable[str],
    values: Optional[Iterable[Any]] = None,
    factory: Optional[ValueFactory] = None,
) -> Iterator[Tuple[str, Any, Optional[ValueFactory]]]:
    """
    Pair up batch inputs as ``(key, value, factory)`` triples.

    With ``values`` the pairs stop at the shorter of the two sequences. With a
    factory every key is yielded and the factory is passed through so the
    scalar primitive decides whether to call it.
    """
    if factory is not None:
        if values is not None:
            raise ValueError("Pass either values or a factory, not both")
        for key in keys:
            yield key, None, factory
        return

    if values is None:
        values = ()
    for key, value in zip(keys, values):
        yield key, value, None


def get_or_add_many(
    record: Record,
    keys: Sequence[str],
    values: Optional[Sequence[Any]] = None,
    factory: Optional[ValueFactory] = None,
    on_change: Optional[ChangeHook] = None,
) -> List[Any]:
    """Batch ``get_or_add``. Reports every processed pair, added or not."""
    results = []
    for key, value, key_factory in iter_pairs(keys, values, factory):
        current, _ = get_or_add(record, key, value, key_factory)
        results.append(current)
        if on_change is not None:
            on_change(key, current)
    return results


def update_many(
    record: Record,
    keys: Sequence[str],
    values: Optional[Sequence[Any]] = None,
    factory: Optional[ValueFactory] = None,
    on_change: Optional[ChangeHook] = None,
) -> List[bool]:
    """Batch ``update``. Reports only the keys that were overwritten."""
    results = []
    for key, value, key_factory in iter_pairs(keys, values, factory):
        updated = update(record, key, value, key_factory)
        results.append(updated)
        if updated and on_change is not None:
            on_change(key, record.get(key))
    return results


def add_or_update_many(
    record: Record,
    keys: Sequence[str],
    values: Optional[Sequence[Any]] = None,
    factory: Optional[ValueFactory] = None,
    on_change: Optional[ChangeHook] = None,
) -> List[bool]:
    """Batch ``add_or_update``. Every pair is written and reported."""
    results = []
    for key, value, key_factory in iter_pairs(keys, values, factory):
        results.append(add_or_update(record, key, value, key_factory))
        if on_change is not None:
            on_change(key, record.get(key))
    return results


def delete_many(
    record: Record,
    keys: Iterable[str],
    on_change: Optional[ChangeHook] = None,
) -> List[bool]:
    """Batch ``delete``. Removed keys are reported with a ``None`` value."""
    results = []
    for key in keys:
        removed = delete(record, key)
        results.append(removed)
        if removed and on_change is not None:
            on_change(key, None)
    return results
