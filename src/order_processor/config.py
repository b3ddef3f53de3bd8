"""
Order Processor Configuration Module

Settings for the SQS poll loop, the circuit breaker, database credentials,
order validation limits, health/metrics endpoints and logging.
Loads settings from environment variables with Pydantic validation.
"""

from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from src.order_processor.models import OrderLimits

# Load .env file if present (local development)
load_dotenv()


class ProcessorConfig(BaseSettings):
    """
    Order processor configuration with validation.

    Database credentials come from Secrets Manager when db_secret_name is set;
    otherwise the postgres_* settings are used directly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === AWS SETTINGS ===
    aws_region: str = Field(
        default="us-east-1",
        description="AWS region for SQS and Secrets Manager",
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        description="Endpoint override (e.g. LocalStack http://localhost:4566)",
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        description="Static access key (falls back to the default credential chain)",
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        description="Static secret key (falls back to the default credential chain)",
    )

    sqs_queue_url: str = Field(
        default="",
        description="URL of the order queue to drain",
    )

    db_secret_name: Optional[str] = Field(
        default=None,
        description="Secrets Manager id holding {username, password, host, port, dbname}",
    )

    # === DATABASE SETTINGS (used when db_secret_name is not set) ===
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")

    postgres_port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")

    postgres_db: str = Field(default="orders_db", description="PostgreSQL database name")

    postgres_user: str = Field(default="orderuser", description="PostgreSQL username")

    postgres_password: str = Field(default="orderpass", description="PostgreSQL password")

    db_pool_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="SQLAlchemy connection pool size",
    )

    # === CONSUMER SETTINGS ===
    consumer_concurrency: Optional[int] = Field(
        default=None,
        ge=1,
        le=50,
        description="Messages processed in parallel (defaults to db_pool_size)",
    )

    sqs_wait_time_seconds: int = Field(
        default=20,
        ge=0,
        le=20,
        description="Long-poll wait time for ReceiveMessage",
    )

    circuit_breaker_threshold: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Consecutive queue failures before the circuit opens",
    )

    circuit_breaker_base_delay_seconds: float = Field(
        default=5.0,
        gt=0,
        le=300,
        description="First backoff delay once the circuit is open",
    )

    circuit_breaker_max_delay_seconds: float = Field(
        default=60.0,
        gt=0,
        le=3600,
        description="Upper bound for the open-circuit backoff",
    )

    # === SECRET BOOTSTRAP ===
    secret_max_attempts: int = Field(
        default=30,
        ge=1,
        le=100,
        description="Attempts while waiting for the database secret to appear",
    )

    secret_initial_delay_seconds: float = Field(default=1.0, gt=0, le=60)

    secret_max_delay_seconds: float = Field(default=10.0, gt=0, le=300)

    # === ORDER VALIDATION ===
    order_max_quantity: int = Field(default=10000, ge=1, description="Largest accepted quantity")

    order_min_price: Decimal = Field(default=Decimal("0.01"), ge=0, description="Lowest total price")

    order_max_price: Decimal = Field(
        default=Decimal("1000000"), gt=0, description="Highest total price"
    )

    # === HEALTH / TELEMETRY ===
    health_host: str = Field(default="0.0.0.0", description="Health endpoint bind address")

    health_port: int = Field(default=8080, ge=0, le=65535, description="Health endpoint port")

    health_staleness_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Max age of the last successful poll before reporting unhealthy",
    )

    metrics_enabled: bool = Field(default=True, description="Expose Prometheus metrics")

    metrics_port: int = Field(default=9090, ge=0, le=65535, description="Prometheus port")

    otel_enabled: bool = Field(default=False, description="Export OpenTelemetry traces")

    otel_service_name: str = Field(default="order-processor")

    otel_exporter_otlp_endpoint: str = Field(default="http://localhost:4317")

    # === LOGGING ===
    log_level: str = Field(default="INFO", description="Logging level")

    log_format: str = Field(default="json", description="Log output format (json or text)")

    @model_validator(mode="after")
    def check_concurrency_fits_pool(self) -> "ProcessorConfig":
        # The pool has no overflow; extra workers would time out on checkout
        if self.consumer_concurrency is not None and self.consumer_concurrency > self.db_pool_size:
            raise ValueError(
                f"consumer_concurrency ({self.consumer_concurrency}) must not exceed "
                f"db_pool_size ({self.db_pool_size})"
            )
        return self

    @property
    def effective_concurrency(self) -> int:
        """Concurrency bound, matched to the pool size unless set explicitly."""
        return self.consumer_concurrency or self.db_pool_size

    def get_aws_client_kwargs(self) -> dict:
        """Keyword arguments shared by the boto3 SQS and Secrets Manager clients."""
        kwargs = {"region_name": self.aws_region}
        if self.aws_endpoint_url:
            kwargs["endpoint_url"] = self.aws_endpoint_url
        if self.aws_access_key_id and self.aws_secret_access_key:
            kwargs["aws_access_key_id"] = self.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.aws_secret_access_key
        return kwargs

    def get_database_url(self) -> URL:
        """Get SQLAlchemy database URL from the postgres_* settings."""
        return URL.create(
            "postgresql",
            username=self.postgres_user,
            password=self.postgres_password,
            host=self.postgres_host,
            port=self.postgres_port,
            database=self.postgres_db,
        )

    def get_order_limits(self) -> OrderLimits:
        return OrderLimits(
            max_quantity=self.order_max_quantity,
            min_price=self.order_min_price,
            max_price=self.order_max_price,
        )


def load_config() -> ProcessorConfig:
    """Load and validate processor configuration."""
    return ProcessorConfig()
