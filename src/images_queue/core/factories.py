"""Factory helpers for creating configured service instances."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError

from .clients import S3ObjectStore, SQSQueueService
from .config import SESSION_KEYS, PipelineConfig, parse_connection_string
from .exceptions import ConfigurationError
from .observability import StructuredLogger
from .protocols import LoggerProtocol


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str = "images-queue", debug: bool = False) -> LoggerProtocol:
        """Create a structured logger, at DEBUG level when requested."""
        return StructuredLogger(name, level=logging.DEBUG if debug else None)


class SessionFactory:
    """Factory for aioboto3 sessions and client settings."""

    @staticmethod
    def create_session(config: PipelineConfig) -> Tuple[aioboto3.Session, dict]:
        """
        Build a session and the per-client keyword arguments from the connection string.

        Returns:
            Tuple of (session, client kwargs)

        Raises:
            ConfigurationError: If the connection string is malformed or names
                credentials botocore cannot load (e.g. an unknown profile)
        """
        connection = parse_connection_string(config.connection_string)
        try:
            session = aioboto3.Session(
                **{key: value for key, value in connection.items() if key in SESSION_KEYS}
            )
        except BotoCoreError as e:
            raise ConfigurationError(f"Cannot create AWS session from connection string: {e}") from e
        client_kwargs = {
            "config": Config(retries={"mode": "standard", "max_attempts": config.max_attempts}),
        }
        if "endpoint_url" in connection:
            client_kwargs["endpoint_url"] = connection["endpoint_url"]
        return session, client_kwargs


@asynccontextmanager
async def open_services(
    config: PipelineConfig,
    session: Optional[aioboto3.Session] = None,
) -> AsyncIterator[Tuple[S3ObjectStore, SQSQueueService]]:
    """
    Open S3 and SQS clients for the duration of one sweep.

    Raises:
        ConfigurationError: If the connection string is missing or malformed
    """
    config.require_connection()
    default_session, client_kwargs = SessionFactory.create_session(config)
    session = session or default_session

    async with session.client("s3", **client_kwargs) as s3_client:  # type: ignore[reportUnknownMemberType]
        async with session.client("sqs", **client_kwargs) as sqs_client:  # type: ignore[reportUnknownMemberType]
            yield (
                S3ObjectStore(s3_client),
                SQSQueueService(sqs_client, lease_seconds=config.lease_seconds),
            )
