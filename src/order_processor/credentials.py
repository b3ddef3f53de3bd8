"""
Database Credential Resolution from AWS Secrets Manager

The processor never holds database passwords in its environment. At startup it
reads a JSON secret from Secrets Manager:

    {"username": "...", "password": "...", "host": "...", "port": 5432, "dbname": "..."}

BOOTSTRAP RACE:
- In local and CI environments the processor container often starts before
  provisioning (Terraform against LocalStack) has written the secret
- Secrets Manager answers ResourceNotFoundException until then
- We retry ONLY that error, with capped exponential backoff:
    delay(attempt) = min(initial * 1.5 ** (attempt - 1), max_delay)
    1.0s, 1.5s, 2.25s, 3.4s, ... capped at 10s, 30 attempts by default
- Any other error (AccessDenied, bad endpoint, malformed secret) is
  unrecoverable by waiting and fails immediately
"""

import json
import logging
import time
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ValidationError
from sqlalchemy.engine import URL

logger = logging.getLogger(__name__)

SECRET_NOT_FOUND_CODE = "ResourceNotFoundException"


class SecretNotFound(Exception):
    """The secret does not exist (yet)."""


class SecretStoreUnavailable(Exception):
    """Any other failure reading or decoding the secret."""


class DatabaseCredentials(BaseModel):
    """Connection settings stored in the database secret."""

    username: str
    password: str
    host: str
    port: int = 5432
    dbname: str

    def to_url(self) -> URL:
        """Get SQLAlchemy database URL (credentials escaped by SQLAlchemy)."""
        return URL.create(
            "postgresql",
            username=self.username,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.dbname,
        )


class CredentialResolver:
    """
    Fetches DatabaseCredentials, waiting for the secret to be provisioned.

    Attributes:
        client: boto3 Secrets Manager client
        max_attempts: Total GetSecretValue attempts before giving up
        initial_delay: Delay after the first "not found" (seconds)
        multiplier: Backoff growth factor
        max_delay: Cap on a single delay (seconds)
    """

    def __init__(
        self,
        client: Any,
        max_attempts: int = 30,
        initial_delay: float = 1.0,
        multiplier: float = 1.5,
        max_delay: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt number `attempt` (1-based)."""
        return min(self.initial_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def resolve(self, secret_id: str) -> DatabaseCredentials:
        """
        Fetch and parse the database secret.

        Args:
            secret_id: Secrets Manager name or ARN

        Returns:
            Parsed DatabaseCredentials

        Raises:
            SecretNotFound: Secret still absent after max_attempts
            SecretStoreUnavailable: Any other error (not retried)
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                credentials = self._fetch(secret_id)
                logger.info(
                    "Database credentials retrieved",
                    extra={"secret_id": secret_id, "attempt": attempt},
                )
                return credentials
            except SecretNotFound:
                if attempt == self.max_attempts:
                    logger.error(
                        "Secret not found after all attempts",
                        extra={"secret_id": secret_id, "attempts": self.max_attempts},
                    )
                    raise

                delay = self.backoff_delay(attempt)
                logger.info(
                    f"Waiting for secret, retrying in {delay:.2f}s",
                    extra={
                        "secret_id": secret_id,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                    },
                )
                self._sleep(delay)

        # max_attempts < 1
        raise SecretNotFound(secret_id)

    def _fetch(self, secret_id: str) -> DatabaseCredentials:
        try:
            response = self.client.get_secret_value(SecretId=secret_id)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code == SECRET_NOT_FOUND_CODE:
                raise SecretNotFound(secret_id) from e
            raise SecretStoreUnavailable(f"Cannot read secret {secret_id}: {code}") from e
        except BotoCoreError as e:
            raise SecretStoreUnavailable(f"Cannot reach Secrets Manager: {e}") from e

        try:
            return DatabaseCredentials(**json.loads(response["SecretString"]))
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise SecretStoreUnavailable(f"Secret {secret_id} is not valid credentials JSON") from e
