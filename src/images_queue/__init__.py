"""Images queue pipeline: stage images, enqueue references, resize on drain."""

__version__ = "0.1.0"
