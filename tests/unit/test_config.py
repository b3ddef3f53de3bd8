"""
Unit Tests for Processor Configuration

Tests Pydantic validation of ProcessorConfig: defaults, bounds, environment
variable loading and helper methods.

TEST STRATEGY:
- Test default values
- Test validation rules (constraints, types)
- Test environment variable loading
- Test helper methods (effective_concurrency, get_database_url, ...)
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy.engine import make_url

from src.order_processor.config import ProcessorConfig, load_config
from src.order_processor.models import OrderLimits

# ==============================================================================
# DEFAULTS
# ==============================================================================


@pytest.mark.unit
def test_processor_config_defaults(monkeypatch):
    """Test ProcessorConfig default values."""
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    config = ProcessorConfig()

    # Consumer defaults
    assert config.sqs_wait_time_seconds == 20
    assert config.circuit_breaker_threshold == 5
    assert config.circuit_breaker_base_delay_seconds == 5.0
    assert config.circuit_breaker_max_delay_seconds == 60.0

    # Pool and concurrency
    assert config.db_pool_size == 5
    assert config.consumer_concurrency is None
    assert config.effective_concurrency == 5

    # Secret bootstrap
    assert config.secret_max_attempts == 30
    assert config.secret_initial_delay_seconds == 1.0
    assert config.secret_max_delay_seconds == 10.0

    # Health
    assert config.health_staleness_seconds == 120.0

    # Logging
    assert config.log_level == "INFO"
    assert config.log_format == "json"


@pytest.mark.unit
def test_effective_concurrency_follows_pool_size():
    """Concurrency defaults to the pool size."""
    config = ProcessorConfig(db_pool_size=12)
    assert config.effective_concurrency == 12


@pytest.mark.unit
def test_effective_concurrency_explicit_override():
    config = ProcessorConfig(db_pool_size=12, consumer_concurrency=4)
    assert config.effective_concurrency == 4


# ==============================================================================
# VALIDATION
# ==============================================================================


@pytest.mark.unit
def test_config_validation_pool_size():
    """Test db_pool_size bounds."""
    ProcessorConfig(db_pool_size=1)
    ProcessorConfig(db_pool_size=50)

    with pytest.raises(ValidationError) as exc_info:
        ProcessorConfig(db_pool_size=0)
    assert "db_pool_size" in str(exc_info.value)


@pytest.mark.unit
def test_config_validation_wait_time_max_20():
    """SQS long polling cannot exceed 20 seconds."""
    with pytest.raises(ValidationError):
        ProcessorConfig(sqs_wait_time_seconds=21)


@pytest.mark.unit
def test_config_validation_threshold_positive():
    with pytest.raises(ValidationError):
        ProcessorConfig(circuit_breaker_threshold=0)


# ==============================================================================
# ENVIRONMENT
# ==============================================================================


@pytest.mark.unit
def test_config_from_env(monkeypatch):
    """Test loading ProcessorConfig from environment variables."""
    monkeypatch.setenv("SQS_QUEUE_URL", "http://localhost:4566/000000000000/orders")
    monkeypatch.setenv("DB_SECRET_NAME", "orders/db")
    monkeypatch.setenv("DB_POOL_SIZE", "10")
    monkeypatch.setenv("ORDER_MAX_QUANTITY", "50")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = load_config()

    assert config.sqs_queue_url == "http://localhost:4566/000000000000/orders"
    assert config.db_secret_name == "orders/db"
    assert config.db_pool_size == 10
    assert config.effective_concurrency == 10
    assert config.order_max_quantity == 50
    assert config.log_level == "DEBUG"


# ==============================================================================
# HELPERS
# ==============================================================================


@pytest.mark.unit
def test_get_database_url():
    config = ProcessorConfig(
        postgres_host="db",
        postgres_port=5433,
        postgres_db="orders",
        postgres_user="svc",
        postgres_password="pw",
    )
    assert config.get_database_url().render_as_string(hide_password=False) == (
        "postgresql://svc:pw@db:5433/orders"
    )


@pytest.mark.unit
def test_get_database_url_escapes_special_characters():
    config = ProcessorConfig(postgres_user="svc@corp", postgres_password="p@ss/w#rd:1")

    url = make_url(config.get_database_url().render_as_string(hide_password=False))

    assert url.username == "svc@corp"
    assert url.password == "p@ss/w#rd:1"
    assert url.host == "localhost"
    assert url.database == "orders_db"


# ==============================================================================
# POOL / CONCURRENCY CONSISTENCY
# ==============================================================================


@pytest.mark.unit
def test_concurrency_above_pool_size_rejected():
    """Every worker must be able to hold a pooled connection."""
    with pytest.raises(ValidationError, match="must not exceed db_pool_size"):
        ProcessorConfig(db_pool_size=5, consumer_concurrency=6)


@pytest.mark.unit
def test_concurrency_equal_to_pool_size_accepted():
    config = ProcessorConfig(db_pool_size=5, consumer_concurrency=5)
    assert config.effective_concurrency == 5


@pytest.mark.unit
def test_get_aws_client_kwargs_localstack():
    config = ProcessorConfig(
        aws_region="eu-west-1",
        aws_endpoint_url="http://localhost:4566",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )
    assert config.get_aws_client_kwargs() == {
        "region_name": "eu-west-1",
        "endpoint_url": "http://localhost:4566",
        "aws_access_key_id": "test",
        "aws_secret_access_key": "test",
    }


@pytest.mark.unit
def test_get_aws_client_kwargs_default_chain(monkeypatch):
    """Without static keys boto3 falls back to its own credential chain."""
    monkeypatch.delenv("AWS_ACCESS_KEY_ID", raising=False)
    monkeypatch.delenv("AWS_SECRET_ACCESS_KEY", raising=False)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)

    config = ProcessorConfig(aws_region="us-east-1")
    assert config.get_aws_client_kwargs() == {"region_name": "us-east-1"}


@pytest.mark.unit
def test_get_order_limits():
    config = ProcessorConfig(order_max_quantity=99, order_max_price=Decimal("500"))
    assert config.get_order_limits() == OrderLimits(
        max_quantity=99, min_price=Decimal("0.01"), max_price=Decimal("500")
    )
