"""
Conversion helpers between plain records and observable entities.
"""

from typing import Any, Optional

from .entity import ObservableEntity
from .record import Entity, Record


def to_observable(record: Optional[Record], **options: Any) -> ObservableEntity:
    """Wrap ``record`` in place. See ``ObservableEntity`` for ``options``."""
    return ObservableEntity.from_record(record, **options)


def to_entity(observable: Optional[ObservableEntity]) -> Entity:
    """
    Detached ``Entity`` copy of an observable entity's record.

    The copy keeps the logical name and id (when the record has them) and a
    shallow copy of every attribute. Writes to the copy are not observed.
    """
    if observable is None:
        return Entity()

    record = observable.record
    entity = Entity(getattr(record, "logical_name", None), getattr(record, "id", None))
    for key in record.keys():
        entity[key] = record.get(key)
    return entity
