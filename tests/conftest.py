"""Pytest configuration and shared fixtures."""

import pytest

from invoice_engine.store import InMemoryDatastore

from .fixtures import make_engine


@pytest.fixture
def datastore():
    return InMemoryDatastore()


@pytest.fixture
def engine(datastore):
    """Dispatcher with every handler registered, over the ``datastore`` fixture."""
    return make_engine(datastore)
