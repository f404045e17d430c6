"""
Pytest configuration and fixtures
"""

import pytest

from ingestion.loaders.memory_loader import InMemoryStore
from tests.helpers import TcgcsvSource


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def tcgcsv_source():
    return TcgcsvSource()
