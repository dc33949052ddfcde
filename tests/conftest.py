"""
Test bootstrap:
- Put the tests directory on sys.path so ``helpers`` imports resolve
- Shared fixtures for keys, a mock chain API and offline clients
"""
import pathlib
import sys

import pytest

TESTS_DIR = pathlib.Path(__file__).parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from helpers.factories import HEADERS, WIF, mk_client  # noqa: E402
from helpers.mocks import MockChainApi  # noqa: E402


@pytest.fixture
def wif():
    """Well known test key; never use it on a live chain."""
    return WIF


@pytest.fixture
def headers():
    return dict(HEADERS)


@pytest.fixture
def chain_api():
    """Mock chain API that accepts every transaction."""
    return MockChainApi()


@pytest.fixture
def offline_client():
    """Client with static headers, a static key and no chain API."""
    return mk_client(key_provider=WIF)
