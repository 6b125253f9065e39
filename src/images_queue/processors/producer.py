"""Producer sweep: stage local images in the object store and enqueue references."""

import asyncio
import fnmatch
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..core.config import PipelineConfig
from ..core.error_handling import classify_failure
from ..core.exceptions import ConfigurationError
from ..core.factories import LoggerFactory
from ..core.image_utils import DEFAULT_PATTERNS, content_type_for
from ..core.models import ItemOutcome, OutcomeKind, RunResult, StagedReference, WorkItem
from ..core.observability import LogContext
from ..core.protocols import LoggerProtocol, ObjectStoreProtocol, QueueServiceProtocol
from .common import SweepRecorder, action_message, check_cancelled, log_configuration


@dataclass(frozen=True)
class EnqueuePlan:
    """A validated file together with the staged object name it will get."""

    item: WorkItem
    staged_name: str


def parse_patterns(patterns: Union[str, Sequence[str]]) -> List[str]:
    """Split "*.png;*.jpg" style pattern strings into a clean list."""
    if isinstance(patterns, str):
        patterns = [patterns]
    parsed: List[str] = []
    for pattern in patterns:
        parsed.extend(p.strip() for p in pattern.split(";") if p.strip())
    return parsed


def new_staged_name(file_name: str) -> str:
    """Random, collision-resistant object name that still shows the original file."""
    return f"{uuid.uuid4().hex}-{file_name}"


def discover_files(source_dir: Path, patterns: Union[str, Sequence[str]]) -> List[Path]:
    """
    List files in the top level of source_dir matching any pattern.

    Matching is case-insensitive; the result is de-duplicated and sorted.

    Raises:
        ConfigurationError: If source_dir is not a directory
    """
    if not source_dir.is_dir():
        raise ConfigurationError(f"Folder does not exist: {source_dir}")

    lowered = [p.lower() for p in parse_patterns(patterns)]
    matched = {
        entry
        for entry in source_dir.iterdir()
        if entry.is_file() and any(fnmatch.fnmatchcase(entry.name.lower(), p) for p in lowered)
    }
    return sorted(matched)


class Producer:
    """Walks a source directory and hands each valid image to the queue."""

    def __init__(
        self,
        store: ObjectStoreProtocol,
        queue: QueueServiceProtocol,
        config: PipelineConfig,
        logger: Optional[LoggerProtocol] = None,
    ):
        self._store = store
        self._queue = queue
        self._config = config
        self._logger = logger or LoggerFactory.create_logger("images-queue.producer")

    def decide(self, path: Path) -> Union[EnqueuePlan, ItemOutcome]:
        """Validate a candidate file; the same decision drives real and simulated runs."""
        file_name = path.name
        try:
            stat = path.stat()
        except FileNotFoundError:
            return self._skip(file_name, "File no longer exists")
        except OSError as e:
            return self._failed(file_name, "stat", e)

        size = stat.st_size
        if size == 0:
            return self._skip(file_name, "File is empty (0 bytes)")
        if size < self._config.min_size_bytes:
            return self._skip(
                file_name,
                f"File is smaller than minimum size ({size} < {self._config.min_size_bytes} bytes)",
            )
        if size > self._config.max_size_bytes:
            return self._skip(
                file_name,
                f"File exceeds maximum size ({size} > {self._config.max_size_bytes} bytes)",
            )

        content_type = content_type_for(file_name)
        if content_type is None:
            return self._skip(file_name, f"Unsupported file type: {path.suffix or '(none)'}")

        item = WorkItem(path=path, file_name=file_name, size_bytes=size, content_type=content_type)
        return EnqueuePlan(item=item, staged_name=new_staged_name(file_name))

    async def execute(self, plan: EnqueuePlan) -> ItemOutcome:
        """Upload, enqueue, then delete the local file; stop at the first failed step."""
        item = plan.item
        context = LogContext(operation="enqueue", component="producer").with_metadata(
            file=item.file_name, staged=plan.staged_name
        )

        try:
            data = await asyncio.to_thread(item.path.read_bytes)
            await self._store.put(
                self._config.staging_container, plan.staged_name, data, item.content_type or ""
            )
        except Exception as e:  # noqa: BLE001
            return self._failed(item.file_name, "upload", e, context)
        self._logger.info(f"Uploaded: {item.file_name} ({item.size_bytes} bytes)", context)

        reference = StagedReference(
            original_file_name=item.file_name,
            staged_object_name=plan.staged_name,
            content_kind=item.content_type or "",
            size_bytes=item.size_bytes,
        )
        try:
            await self._queue.send(self._config.queue_name, reference.to_message_body())
        except Exception as e:  # noqa: BLE001
            self._logger.warning(
                f"Staged object left orphaned: {self._config.staging_container}/{plan.staged_name}",
                context,
            )
            return self._failed(item.file_name, "enqueue", e, context)
        self._logger.info(f"Enqueued: {item.file_name}", context)

        try:
            await asyncio.to_thread(item.path.unlink)
        except OSError as e:
            return self._failed(item.file_name, "delete local file", e, context)
        self._logger.info(f"Deleted local file: {item.path}", context)

        return ItemOutcome(
            item=item.file_name,
            kind=OutcomeKind.SUCCESS,
            action="uploaded, enqueued and deleted local file",
        )

    def simulate(self, plan: EnqueuePlan) -> ItemOutcome:
        """Log what execute would do without touching the store, queue or disk."""
        item = plan.item
        for action in (
            f"Upload {item.file_name} ({item.size_bytes} bytes) to {self._config.staging_container}/{plan.staged_name}",
            f"Enqueue reference for {item.file_name} on {self._config.queue_name}",
            f"Delete local file: {item.path}",
        ):
            self._logger.info(action_message(True, action))
        return ItemOutcome(
            item=item.file_name,
            kind=OutcomeKind.SUCCESS,
            action="would upload, enqueue and delete local file",
        )

    async def run(
        self,
        source_dir: Union[str, Path],
        patterns: Union[str, Sequence[str]] = DEFAULT_PATTERNS,
        simulate: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunResult:
        """
        Run one producer sweep over source_dir.

        Raises:
            ConfigurationError: If source_dir does not exist
            SweepCancelledError: If cancel_event is set between files
        """
        source_dir = Path(source_dir)
        log_configuration(self._logger, self._config, "enqueue", simulate)
        files = discover_files(source_dir, patterns)
        self._logger.info(f"Found {len(files)} matching file(s) in {source_dir}")

        with SweepRecorder("Enqueue", self._logger, simulated=simulate) as recorder:
            for path in files:
                check_cancelled(cancel_event)
                decision = self.decide(path)
                if isinstance(decision, ItemOutcome):
                    recorder.record(decision)
                elif simulate:
                    recorder.record(self.simulate(decision))
                else:
                    recorder.record(await self.execute(decision))
        return recorder.result()

    def _skip(self, file_name: str, reason: str) -> ItemOutcome:
        self._logger.info(f"Skipping {file_name}: {reason}")
        return ItemOutcome(item=file_name, kind=OutcomeKind.SKIP, reason=reason, action="skip")

    def _failed(
        self,
        file_name: str,
        step: str,
        error: BaseException,
        context: Optional[LogContext] = None,
    ) -> ItemOutcome:
        category = classify_failure(error)
        reason = f"{step} failed ({category}): {error}"
        if category == "unexpected error":
            self._logger.error(f"Failed to process file {file_name}: {reason}", context, exc_info=True)
        else:
            self._logger.error(f"Failed to process file {file_name}: {reason}", context)
        return ItemOutcome(item=file_name, kind=OutcomeKind.FAIL, reason=reason, action=step)
