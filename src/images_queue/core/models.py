"""Shared data models for the images queue pipeline."""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkItem(BaseModel):
    """A local file the producer is considering."""

    path: Path
    file_name: str
    size_bytes: int
    content_type: Optional[str] = None


class StagedReference(BaseModel):
    """Queue message body pointing at a staged object."""

    model_config = ConfigDict(populate_by_name=True)

    original_file_name: str = Field(alias="originalFileName", min_length=1)
    staged_object_name: str = Field(alias="stagedObjectName", min_length=1)
    content_kind: str = Field(alias="contentKind", min_length=1)
    size_bytes: int = Field(alias="sizeBytes", ge=0)
    enqueued_at_utc: datetime = Field(alias="enqueuedAtUtc", default_factory=utc_now)

    def to_message_body(self) -> str:
        return self.model_dump_json(by_alias=True)


class LeasedMessage(BaseModel):
    """A received message holding a lease until deleted or expired."""

    message_id: str
    body: str
    lease_handle: str
    delivery_count: int = 1


class PeekedMessage(BaseModel):
    """A message read without taking a lease."""

    message_id: str
    body: str
    delivery_count: int = 0


class OutcomeKind(str, Enum):
    """Tagged per-item result of a sweep."""

    SUCCESS = "success"
    SKIP = "skip"
    ORPHAN = "orphan"
    FAIL = "fail"


class ItemOutcome(BaseModel):
    """Decision and result for a single file or message."""

    model_config = ConfigDict(frozen=True)

    item: str
    kind: OutcomeKind
    reason: str = ""
    action: str = ""
    output_name: str = ""
    source_size: Optional[Tuple[int, int]] = None
    target_size: Optional[Tuple[int, int]] = None
    warnings: Tuple[str, ...] = ()

    @property
    def decision(self) -> Tuple[str, OutcomeKind, str, Optional[Tuple[int, int]]]:
        """The parts of an outcome that must not differ between simulate and real runs."""
        return (self.item, self.kind, self.output_name, self.target_size)


class RunResult(BaseModel):
    """Immutable summary of one producer or consumer sweep."""

    model_config = ConfigDict(frozen=True)

    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    orphaned: int = 0
    failed: int = 0
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    outcomes: Tuple[ItemOutcome, ...] = ()
    simulated: bool = False
    processing_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.failed == 0 else 2
