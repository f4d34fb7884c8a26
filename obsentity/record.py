"""
Entity Records
==============

The key/value bag that observable entities wrap.

The notification layer only ever talks to a record through the five
operations of the ``Record`` protocol, so any object providing them can be
wrapped. ``Entity`` is the default in-memory implementation: a logical name,
an optional identifier and a plain dict of attributes.
"""

import uuid
from typing import Any, Dict, Iterator, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class Record(Protocol):
    """Minimal attribute store consumed by the notification layer."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def contains(self, key: str) -> bool: ...

    def remove(self, key: str) -> bool: ...

    def keys(self) -> List[str]: ...


class Entity:
    """
    Dict-backed record identified by logical name and optional id.

    Attribute keys are compared exactly. A dict passed as ``attributes`` is
    used as the backing storage directly, so changes made through the entity
    are visible to the caller's dict and vice versa.

    Usage:
        account = Entity("account", attributes={"name": "Contoso"})
        account["revenue"] = 1000
        account.get("missing")  # None
        account.remove("revenue")
    """

    # Sentinel object for "key not found"
    _MISSING = object()

    def __init__(
        self,
        logical_name: Optional[str] = None,
        id: Optional[uuid.UUID] = None,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        self.logical_name = logical_name
        self.id = id
        self._attributes: Dict[str, Any] = attributes if attributes is not None else {}

    @property
    def attributes(self) -> Dict[str, Any]:
        """The live attribute dict (not a copy)."""
        return self._attributes

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get value for key.

        Args:
            key: The attribute name
            default: Value to return if the attribute is not set

        Returns:
            The attribute value, or default if not found
        """
        return self._attributes.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set attribute ``key`` to ``value``."""
        self._attributes[key] = value

    def contains(self, key: str) -> bool:
        """Check if the attribute exists."""
        return key in self._attributes

    def remove(self, key: str) -> bool:
        """
        Remove an attribute.

        Returns:
            True if the attribute was removed, False if it didn't exist
        """
        if key not in self._attributes:
            return False
        del self._attributes[key]
        return True

    def keys(self) -> List[str]:
        """Return attribute names in insertion order."""
        return list(self._attributes.keys())

    def values(self) -> List[Any]:
        return list(self._attributes.values())

    def items(self):
        return list(self._attributes.items())

    def clear(self) -> None:
        self._attributes.clear()

    def __len__(self) -> int:
        return len(self._attributes)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __contains__(self, key: Any) -> bool:
        return self.contains(key)

    def __getitem__(self, key: str) -> Any:
        """Get value for key, raises KeyError if not found."""
        value = self._attributes.get(key, self._MISSING)
        if value is self._MISSING:
            raise KeyError(key)
        return value

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __delitem__(self, key: str) -> None:
        """Delete key, raises KeyError if not found."""
        if not self.remove(key):
            raise KeyError(key)

    def __repr__(self):
        return (
            f"Entity(logical_name={self.logical_name!r}, id={self.id!r}, "
            f"attributes={self._attributes!r})"
        )
