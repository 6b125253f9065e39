"""Protocol definitions for dependency injection and testability."""

from typing import Any, List, Protocol

from .models import LeasedMessage, PeekedMessage


class ObjectStoreProtocol(Protocol):
    """Protocol for object store operations on named containers."""

    async def ensure_container(self, container: str) -> None:
        """Create the container if it does not exist yet."""
        ...

    async def put(self, container: str, name: str, data: bytes, content_type: str) -> None:
        """Store a blob, creating the container lazily."""
        ...

    async def get(self, container: str, name: str) -> bytes:
        """Read a blob."""
        ...

    async def exists(self, container: str, name: str) -> bool:
        """Check whether a blob exists without modifying anything."""
        ...

    async def delete(self, container: str, name: str) -> None:
        """Delete a blob."""
        ...


class QueueServiceProtocol(Protocol):
    """Protocol for durable queue operations."""

    async def ensure_queue(self, name: str) -> None:
        """Create the queue if it does not exist yet."""
        ...

    async def send(self, name: str, body: str) -> None:
        """Send a message, creating the queue lazily."""
        ...

    async def receive_leased(self, name: str, max_count: int) -> List[LeasedMessage]:
        """Receive up to max_count messages, each under a lease."""
        ...

    async def peek_visible(self, name: str, max_count: int) -> List[PeekedMessage]:
        """Read up to max_count messages without hiding them from other readers."""
        ...

    async def delete_leased(self, name: str, lease_handle: str) -> None:
        """Delete a leased message."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...
