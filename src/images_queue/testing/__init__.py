"""Testing utilities and fakes for the images queue pipeline."""

from .fakes import (
    Container,
    FakeLogger,
    FakeObjectStore,
    FakeQueueService,
    StoredObject,
    create_test_image,
    pad_png,
)

__all__ = [
    "FakeObjectStore",
    "FakeQueueService",
    "FakeLogger",
    "StoredObject",
    "Container",
    "create_test_image",
    "pad_png",
]
