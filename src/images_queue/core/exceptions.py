"""Custom exceptions for the images queue pipeline."""

from __future__ import annotations


class ImagesQueueError(Exception):
    """Base exception for all images queue errors."""


class ConfigurationError(ImagesQueueError):
    """Error raised for invalid configuration options."""


class ServiceError(ImagesQueueError):
    """Error raised when an object store or queue call fails."""


class ImageDecodeError(ImagesQueueError):
    """Error raised when image bytes cannot be decoded or re-encoded."""


class MessageFormatError(ImagesQueueError):
    """Error raised when a queue message body cannot be parsed."""


class SweepCancelledError(ImagesQueueError):
    """Raised when a sweep observes the cancellation signal."""
