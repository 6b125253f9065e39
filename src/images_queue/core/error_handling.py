# src/images_queue/core/error_handling.py

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import (
    ImageDecodeError,
    ImagesQueueError,
    MessageFormatError,
    ServiceError,
)


def client_error_code(error: ClientError) -> str:
    """Return the AWS error code carried by a botocore ClientError."""
    return str(error.response.get("Error", {}).get("Code", ""))


def with_service_errors(func):
    """
    A decorator for async client calls that turns botocore failures into ServiceError.

    Errors already belonging to the pipeline hierarchy pass through untouched.
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__ + '.' + func.__name__)
        try:
            return await func(*args, **kwargs)
        except ImagesQueueError:
            raise
        except ClientError as e:
            code = client_error_code(e)
            logger.debug(f"Service call '{func.__name__}' failed with {code}: {e}")
            raise ServiceError(f"{func.__name__} failed ({code}): {e}") from e
        except BotoCoreError as e:
            logger.debug(f"Service call '{func.__name__}' failed: {e}")
            raise ServiceError(f"{func.__name__} failed: {e}") from e
    return wrapper


def classify_failure(error: BaseException) -> str:
    """Name the failure category used in run summaries."""
    if isinstance(error, ServiceError):
        return "service error"
    if isinstance(error, ImageDecodeError):
        return "decode error"
    if isinstance(error, MessageFormatError):
        return "message format error"
    if isinstance(error, OSError):
        return "io error"
    return "unexpected error"


def is_payload_error(error: BaseException) -> bool:
    """True when retrying can never help because the payload itself is bad."""
    return isinstance(error, (ImageDecodeError, MessageFormatError))


class EnsureOnce:
    """
    Runs an idempotent create call at most once per name and caches its result.

    Check, lock, check again: concurrent callers for the same name wait on the
    lock and then observe the cached value instead of issuing a second create.
    """

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}
        self._lock: Optional[asyncio.Lock] = None

    def is_ensured(self, name: str) -> bool:
        return name in self._values

    def cached(self, name: str) -> Any:
        return self._values.get(name)

    async def ensure(self, name: str, create: Callable[[], Awaitable[Any]]) -> Any:
        if name in self._values:
            return self._values[name]
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if name not in self._values:
                self._values[name] = await create()
            return self._values[name]
