"""
obsentity - Observable Entities

Attribute-level change notifications for key/value entity records: per-key
on-change callbacks, latest-value attribute streams, and a global change feed
fed by try-style mutations.
"""

__version__ = "0.1.0"

# Notification primitive shared by every feed
from .channel import CallbackError, Channel, ChannelRegistry, Subscription

# The wrapper and its factory
from .entity import AttributeChange, AttributeTypeError, ObservableEntity, create

# Conversions
from .extensions import to_entity, to_observable

# Records
from .record import Entity, Record

__all__ = [
    # Version
    "__version__",
    # Records
    "Record",
    "Entity",
    # Observable entity
    "ObservableEntity",
    "AttributeChange",
    "create",
    "to_observable",
    "to_entity",
    # Channels
    "Channel",
    "ChannelRegistry",
    "Subscription",
    # Exceptions
    "CallbackError",
    "AttributeTypeError",
]
