"""
Pytest Configuration and Shared Fixtures

Shared fixtures for testing the order processor.

TEST DOUBLES:
- FakeQueue: scripted receive results, records deletes (thread-safe)
- db_manager: real DatabaseManager on a SQLite file (unit tests)
- postgres_container: real PostgreSQL via testcontainers (integration tests)

FIXTURE SCOPES:
- session: Created once for entire test session (containers)
- function: Created for each test function (databases, fakes)
"""

import json
import threading
from typing import Any, Dict, Generator, List, Optional, Union

import pytest
from sqlalchemy import create_engine
from testcontainers.postgres import PostgresContainer

from src.order_processor.database import DatabaseManager
from src.order_processor.models import Base, User
from src.order_processor.sqs_queue import QueueAccessError, QueueMessage

# ==============================================================================
# QUEUE TEST DOUBLES
# ==============================================================================


def make_message(
    body: Union[Dict[str, Any], str],
    message_id: str = "msg-1",
    receipt_handle: Optional[str] = None,
    attributes: Optional[Dict[str, str]] = None,
) -> QueueMessage:
    """Build a QueueMessage; dict bodies are JSON-encoded."""
    return QueueMessage(
        message_id=message_id,
        receipt_handle=receipt_handle or f"rh-{message_id}",
        body=body if isinstance(body, str) else json.dumps(body),
        attributes=attributes or {},
    )


class FakeQueue:
    """
    In-memory stand-in for SQSQueue.

    Each receive() pops the next scripted result: a list of messages, or an
    exception instance to raise. Once the script is exhausted receive()
    returns an empty list.
    """

    queue_url = "https://sqs.test/orders"

    def __init__(self, script: Optional[List[Union[List[QueueMessage], Exception]]] = None):
        self.script = list(script or [])
        self.receive_calls: List[Dict[str, int]] = []
        self.deleted: List[str] = []
        self._lock = threading.Lock()

    def receive(self, max_messages: int, wait_time_seconds: int = 20) -> List[QueueMessage]:
        self.receive_calls.append(
            {"max_messages": max_messages, "wait_time_seconds": wait_time_seconds}
        )
        if not self.script:
            return []
        result = self.script.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def delete(self, receipt_handle: str, correlation_id: Optional[str] = None) -> bool:
        with self._lock:
            self.deleted.append(receipt_handle)
        return True


@pytest.fixture
def message_factory():
    """Provides make_message() to tests."""
    return make_message


@pytest.fixture
def queue_factory():
    """Provides the FakeQueue class; call it with a receive script."""
    return FakeQueue


@pytest.fixture
def fake_queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def queue_error() -> QueueAccessError:
    return QueueAccessError("ReceiveMessage failed: throttled")


# ==============================================================================
# DATABASE FIXTURES
# ==============================================================================


@pytest.fixture
def db_manager(tmp_path) -> Generator[DatabaseManager, None, None]:
    """
    DatabaseManager on a fresh SQLite file with the schema and user 1.

    A file (not :memory:) so every pooled connection sees the same data.
    """
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'orders.db'}", pool_size=5)
    Base.metadata.create_all(manager.engine)
    with manager.get_session() as session:
        session.add(User(id=1, username="alice"))

    try:
        yield manager
    finally:
        manager.close()


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """PostgreSQL testcontainer shared by the integration tests."""
    with PostgresContainer("postgres:15") as postgres:
        postgres.get_connection_url()
        yield postgres


@pytest.fixture
def postgres_db_manager(postgres_container) -> Generator[DatabaseManager, None, None]:
    """DatabaseManager against the container with clean tables and user 1."""
    db_url = postgres_container.get_connection_url()

    engine = create_engine(db_url)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    engine.dispose()

    manager = DatabaseManager(db_url, pool_size=5)
    with manager.get_session() as session:
        session.add(User(id=1, username="alice"))

    try:
        yield manager
    finally:
        manager.close()


# ==============================================================================
# ORDER MESSAGE FIXTURES
# ==============================================================================


@pytest.fixture
def sample_order_data() -> Dict[str, Any]:
    """A valid order message body."""
    return {
        "userId": 1,
        "productId": 5,
        "productName": "Widget",
        "sku": "WID-001",
        "quantity": 3,
        "totalPrice": 29.97,
        "correlationId": "corr-0001",
    }


@pytest.fixture
def sample_invalid_order_data() -> Dict[str, Any]:
    """Order body missing userId and with a zero quantity."""
    return {
        "productName": "Widget",
        "quantity": 0,
        "totalPrice": 29.97,
    }


# ==============================================================================
# TEST ENVIRONMENT CONFIGURATION
# ==============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires containers)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 5 seconds)")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")
