"""
Shared pytest fixtures for obsentity tests.
"""

import pytest

from obsentity import Entity, ObservableEntity


@pytest.fixture
def record():
    """A fresh test record with a couple of attributes."""
    return Entity("testentity", attributes={"name": "Test", "int1": 10, "int2": 20})


@pytest.fixture
def observable(record):
    """An ObservableEntity wrapping the ``record`` fixture."""
    return ObservableEntity.from_record(record)


@pytest.fixture
def empty_observable():
    """An ObservableEntity over an empty record."""
    return ObservableEntity.from_name("testentity")
