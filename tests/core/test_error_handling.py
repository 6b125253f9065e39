# tests/core/test_error_handling.py

import asyncio

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from images_queue.core.exceptions import (
    ConfigurationError,
    ImageDecodeError,
    ImagesQueueError,
    MessageFormatError,
    ServiceError,
    SweepCancelledError,
)
from images_queue.core.error_handling import (
    EnsureOnce,
    classify_failure,
    client_error_code,
    is_payload_error,
    with_service_errors,
)


def make_client_error(code: str, operation: str = "PutObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} happened"}}, operation)


# --- Tests for custom exceptions ---

def test_custom_exception_hierarchy():
    """Test that every pipeline error derives from ImagesQueueError."""
    for error_type in (
        ConfigurationError,
        ServiceError,
        ImageDecodeError,
        MessageFormatError,
        SweepCancelledError,
    ):
        assert issubclass(error_type, ImagesQueueError)
    assert issubclass(ImagesQueueError, Exception)


def test_client_error_code():
    assert client_error_code(make_client_error("NoSuchKey")) == "NoSuchKey"
    assert client_error_code(ClientError({}, "HeadObject")) == ""


# --- Tests for @with_service_errors decorator ---

def test_with_service_errors_success():
    """Test that return values pass through unchanged."""

    @with_service_errors
    async def succeed(x, y):
        return x + y

    assert asyncio.run(succeed(2, 3)) == 5


def test_with_service_errors_wraps_client_error():
    @with_service_errors
    async def upload():
        raise make_client_error("AccessDenied")

    with pytest.raises(ServiceError, match=r"upload failed \(AccessDenied\)") as exc_info:
        asyncio.run(upload())
    assert isinstance(exc_info.value.__cause__, ClientError)


def test_with_service_errors_wraps_botocore_error():
    @with_service_errors
    async def receive():
        raise EndpointConnectionError(endpoint_url="http://localhost:4566")

    with pytest.raises(ServiceError, match="receive failed"):
        asyncio.run(receive())


def test_with_service_errors_passes_pipeline_errors_through():
    @with_service_errors
    async def nested():
        raise ServiceError("already wrapped")

    with pytest.raises(ServiceError, match="^already wrapped$"):
        asyncio.run(nested())


def test_with_service_errors_leaves_other_errors_alone():
    """Test that non-service errors are not disguised as service errors."""

    @with_service_errors
    async def broken():
        raise ValueError("bad value")

    with pytest.raises(ValueError, match="bad value"):
        asyncio.run(broken())


def test_with_service_errors_preserves_metadata():
    @with_service_errors
    async def documented():
        """Docstring."""

    assert documented.__name__ == "documented"
    assert documented.__doc__ == "Docstring."


# --- Tests for failure classification ---

@pytest.mark.parametrize(
    "error,category",
    [
        (ServiceError("x"), "service error"),
        (ImageDecodeError("x"), "decode error"),
        (MessageFormatError("x"), "message format error"),
        (PermissionError("x"), "io error"),
        (FileNotFoundError("x"), "io error"),
        (RuntimeError("x"), "unexpected error"),
    ],
)
def test_classify_failure(error, category):
    assert classify_failure(error) == category


def test_is_payload_error():
    """Test that only errors a retry cannot fix count as payload errors."""
    assert is_payload_error(ImageDecodeError("x"))
    assert is_payload_error(MessageFormatError("x"))
    assert not is_payload_error(ServiceError("x"))
    assert not is_payload_error(OSError("x"))


# --- Tests for EnsureOnce ---

def test_ensure_once_caches_result():
    ensured = EnsureOnce()
    calls = []

    async def create():
        calls.append(1)
        return "https://queue/images"

    async def scenario():
        first = await ensured.ensure("images", create)
        second = await ensured.ensure("images", create)
        return first, second

    assert asyncio.run(scenario()) == ("https://queue/images", "https://queue/images")
    assert len(calls) == 1
    assert ensured.is_ensured("images")
    assert ensured.cached("images") == "https://queue/images"
    assert not ensured.is_ensured("other")
    assert ensured.cached("other") is None


def test_ensure_once_concurrent_callers_create_once():
    """Test that concurrent ensure calls for one name share a single create."""
    ensured = EnsureOnce()
    calls = []

    async def create():
        calls.append(1)
        await asyncio.sleep(0.01)
        return "created"

    async def scenario():
        return await asyncio.gather(*(ensured.ensure("bucket", create) for _ in range(10)))

    assert asyncio.run(scenario()) == ["created"] * 10
    assert len(calls) == 1


def test_ensure_once_failed_create_is_retried():
    ensured = EnsureOnce()
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise ServiceError("transient")
        return "ok"

    async def scenario():
        with pytest.raises(ServiceError):
            await ensured.ensure("bucket", flaky)
        return await ensured.ensure("bucket", flaky)

    assert asyncio.run(scenario()) == "ok"
    assert len(attempts) == 2
