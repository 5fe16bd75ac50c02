import pytest

from fakes import FakeRunner, MemoryStore
from wpcli import WPCLI


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def wp(runner):
    return WPCLI(runner, path='/srv/wordpress')


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def network_store():
    return MemoryStore(multisite=True)
