"""Core utilities and shared components for the images queue pipeline."""

from .image_utils import (
    content_type_for,
    derive_output_name,
    half_dimensions,
    resize_half,
)
from .logging_config import get_logger, setup_logger
from .exceptions import (
    ImagesQueueError,
    ConfigurationError,
    ServiceError,
    ImageDecodeError,
    MessageFormatError,
    SweepCancelledError,
)
from .config import PipelineConfig, load_config
from .models import (
    ItemOutcome,
    LeasedMessage,
    OutcomeKind,
    PeekedMessage,
    RunResult,
    StagedReference,
    WorkItem,
)

__all__ = [
    "PipelineConfig",
    "load_config",
    "WorkItem",
    "StagedReference",
    "LeasedMessage",
    "PeekedMessage",
    "OutcomeKind",
    "ItemOutcome",
    "RunResult",
    "content_type_for",
    "derive_output_name",
    "half_dimensions",
    "resize_half",
    "setup_logger",
    "get_logger",
    "ImagesQueueError",
    "ConfigurationError",
    "ServiceError",
    "ImageDecodeError",
    "MessageFormatError",
    "SweepCancelledError",
]
