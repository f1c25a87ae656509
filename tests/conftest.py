import pytest

from tests.fakes import FakeCatalog, FakeClock, FakeEngine, FakeIndexer


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def indexer():
    return FakeIndexer()


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def catalog():
    return FakeCatalog()


