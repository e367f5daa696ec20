import sys

import pytest
from loguru import logger

from streampay import InMemoryPayoutRail, StreamPayService


OWNER = "platform-owner"


@pytest.fixture
def rail():
    return InMemoryPayoutRail()


@pytest.fixture
def service(rail):
    """In-memory service with the default 5% fee."""
    return StreamPayService.create(owner=OWNER, rail=rail)


@pytest.fixture
def funded(service):
    """alice streams at 100/s; bob holds 10,000."""
    service.register_creator("alice", "Alice Live", 100)
    service.deposit_funds("bob", 10_000)
    return service


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
