"""Producer and consumer sweeps."""

from .producer import Producer, discover_files, parse_patterns
from .consumer import Consumer, MessageAction, MessageDecision, parse_reference

__all__ = [
    "Producer",
    "Consumer",
    "MessageAction",
    "MessageDecision",
    "discover_files",
    "parse_patterns",
    "parse_reference",
]
