"""Consumer sweep: drain the queue, resize staged images and publish the results."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Set, Tuple

from pydantic import ValidationError

from ..core.config import PipelineConfig
from ..core.error_handling import classify_failure, is_payload_error
from ..core.exceptions import ImagesQueueError, MessageFormatError, SweepCancelledError
from ..core.factories import LoggerFactory
from ..core.image_utils import TransformResult, derive_output_name, resize_half
from ..core.models import ItemOutcome, LeasedMessage, OutcomeKind, RunResult, StagedReference
from ..core.observability import LogContext
from ..core.protocols import LoggerProtocol, ObjectStoreProtocol, QueueServiceProtocol
from .common import SweepRecorder, action_message, check_cancelled, log_configuration

Transform = Callable[[bytes, str], TransformResult]

# Consecutive batches of already-handled messages tolerated before a drain stops
MAX_STALE_BATCHES = 3


class MessageAction(str, Enum):
    """What the consumer decided to do with one message."""

    PROCESS = "process"
    DELETE_ORPHAN = "delete_orphan"
    DEAD_LETTER = "dead_letter"
    LEAVE = "leave"


@dataclass(frozen=True)
class MessageDecision:
    """Outcome of the read-only half of message handling."""

    action: MessageAction
    item: str
    body: str
    reason: str = ""
    reference: Optional[StagedReference] = None
    output_name: str = ""
    transform: Optional[TransformResult] = None


def parse_reference(body: str) -> StagedReference:
    """
    Parse a queue message body.

    Raises:
        MessageFormatError: If the body is not a valid reference record
    """
    try:
        return StagedReference.model_validate_json(body)
    except ValidationError as e:
        raise MessageFormatError(f"Invalid message body: {e.error_count()} validation error(s)") from e


class Consumer:
    """Drains the queue once, turning each staged image into a half-size result."""

    def __init__(
        self,
        store: ObjectStoreProtocol,
        queue: QueueServiceProtocol,
        config: PipelineConfig,
        logger: Optional[LoggerProtocol] = None,
        transform: Transform = resize_half,
    ):
        self._store = store
        self._queue = queue
        self._config = config
        self._logger = logger or LoggerFactory.create_logger("images-queue.consumer")
        self._transform = transform

    async def decide(self, message_id: str, body: str, delivery_count: int) -> MessageDecision:
        """
        Read-only handling of one message: parse, check, download and transform.

        Nothing is written or deleted here, so simulated and real runs share it.
        """
        item = f"message {message_id}"
        try:
            reference = parse_reference(body)
        except MessageFormatError as e:
            return self._failure(item, body, "parse", e, delivery_count)

        item = reference.original_file_name
        step = "check staged object"
        try:
            exists = await self._store.exists(
                self._config.staging_container, reference.staged_object_name
            )
            if not exists:
                return MessageDecision(
                    action=MessageAction.DELETE_ORPHAN,
                    item=item,
                    body=body,
                    reason=f"Staged object {reference.staged_object_name} no longer exists",
                    reference=reference,
                )
            step = "download"
            data = await self._store.get(
                self._config.staging_container, reference.staged_object_name
            )
            step = "transform"
            result = await asyncio.to_thread(self._transform, data, reference.content_kind)
        except Exception as e:  # noqa: BLE001
            return self._failure(item, body, step, e, delivery_count, reference)

        output_name = derive_output_name(reference.original_file_name, self._config.output_suffix)
        self._logger.info(
            f"Resized: {item} ({result.source_size[0]}x{result.source_size[1]} -> "
            f"{result.target_size[0]}x{result.target_size[1]})"
        )
        return MessageDecision(
            action=MessageAction.PROCESS,
            item=item,
            body=body,
            reference=reference,
            output_name=output_name,
            transform=result,
        )

    async def execute(self, decision: MessageDecision, lease_handle: str) -> ItemOutcome:
        """Apply a decision to the store and queue while the lease is held."""
        context = LogContext(operation="process", component="consumer").with_metadata(
            item=decision.item
        )

        if decision.action is MessageAction.PROCESS:
            return await self._publish(decision, lease_handle, context)

        if decision.action is MessageAction.DELETE_ORPHAN:
            try:
                await self._queue.delete_leased(self._config.queue_name, lease_handle)
            except Exception as e:  # noqa: BLE001
                return self._failed_outcome(decision, "delete orphaned message", e, context)
            self._logger.warning(f"Deleted orphaned message for {decision.item}: {decision.reason}", context)
            return self._orphan_outcome(decision)

        if decision.action is MessageAction.DEAD_LETTER:
            poison_queue = self._config.poison_queue_name
            try:
                await self._queue.send(poison_queue, decision.body)
                await self._queue.delete_leased(self._config.queue_name, lease_handle)
            except Exception as e:  # noqa: BLE001
                return self._failed_outcome(decision, "dead-letter", e, context)
            self._logger.warning(f"Moved poison message for {decision.item} to {poison_queue}", context)
            return self._dead_letter_outcome(decision)

        # Lease is left to expire so the message becomes receivable again
        return self._leave_outcome(decision)

    def simulate(self, decision: MessageDecision) -> ItemOutcome:
        """Log the actions execute would take, without taking them."""
        if decision.action is MessageAction.PROCESS:
            reference, _ = self._payload(decision)
            for action in (
                f"Upload as: {self._config.result_container}/{decision.output_name}",
                f"Delete staged object: {self._config.staging_container}/{reference.staged_object_name}",
                f"Delete queue message for: {decision.item}",
            ):
                self._logger.info(action_message(True, action))
            return self._success_outcome(decision)

        if decision.action is MessageAction.DELETE_ORPHAN:
            self._logger.info(action_message(True, f"Delete orphaned message for {decision.item}: {decision.reason}"))
            return self._orphan_outcome(decision)

        if decision.action is MessageAction.DEAD_LETTER:
            self._logger.info(
                action_message(True, f"Move poison message for {decision.item} to {self._config.poison_queue_name}")
            )
            return self._dead_letter_outcome(decision)

        self._logger.info(action_message(True, f"Leave message for {decision.item} in the queue"))
        return self._leave_outcome(decision)

    async def run(
        self, simulate: bool = False, cancel_event: Optional[asyncio.Event] = None
    ) -> RunResult:
        """
        Run one consumer sweep.

        Real runs receive leased batches until the queue returns an empty batch.
        Simulated runs peek a single batch and never lease, write or delete.

        Raises:
            SweepCancelledError: If cancel_event is set between messages
        """
        log_configuration(self._logger, self._config, "process", simulate)
        with SweepRecorder("Process", self._logger, simulated=simulate) as recorder:
            if simulate:
                await self._preview(recorder, cancel_event)
            else:
                await self._drain(recorder, cancel_event)
        return recorder.result()

    async def _preview(self, recorder: SweepRecorder, cancel_event: Optional[asyncio.Event]) -> None:
        try:
            messages = await self._queue.peek_visible(self._config.queue_name, self._config.batch_size)
        except Exception as e:  # noqa: BLE001
            recorder.record(self._sweep_failure("peek", e))
            return
        if not messages:
            self._logger.info("No messages in queue.")
            return
        for message in messages:
            check_cancelled(cancel_event)
            # The next real receive is one delivery later than what a peek sees
            decision = await self.decide(message.message_id, message.body, message.delivery_count + 1)
            recorder.record(self.simulate(decision))

    async def _drain(self, recorder: SweepRecorder, cancel_event: Optional[asyncio.Event]) -> None:
        try:
            await self._queue.ensure_queue(self._config.queue_name)
            await self._store.ensure_container(self._config.result_container)
        except Exception as e:  # noqa: BLE001
            recorder.record(self._sweep_failure("setup", e))
            return

        seen: Set[str] = set()
        stale_batches = 0
        while True:
            check_cancelled(cancel_event)
            try:
                batch = await self._queue.receive_leased(self._config.queue_name, self._config.batch_size)
            except Exception as e:  # noqa: BLE001
                recorder.record(self._sweep_failure("receive", e))
                return
            if not batch:
                self._logger.info("No more messages in queue.")
                return

            fresh = [message for message in batch if message.message_id not in seen]
            if not fresh:
                stale_batches += 1
                if stale_batches >= MAX_STALE_BATCHES:
                    self._logger.info("Only messages already handled in this sweep are visible; stopping.")
                    return
                continue
            stale_batches = 0
            seen.update(message.message_id for message in fresh)
            for outcome in await self._handle_batch(fresh, cancel_event):
                recorder.record(outcome)

    async def _handle_batch(
        self, messages: Iterable[LeasedMessage], cancel_event: Optional[asyncio.Event]
    ) -> List[ItemOutcome]:
        semaphore = asyncio.Semaphore(self._config.concurrency)

        async def handle(message: LeasedMessage) -> ItemOutcome:
            async with semaphore:
                check_cancelled(cancel_event)
                self._logger.debug(f"Handling message {message.message_id} (delivery {message.delivery_count})")
                decision = await self.decide(message.message_id, message.body, message.delivery_count)
                return await self.execute(decision, message.lease_handle)

        results = await asyncio.gather(*(handle(m) for m in messages), return_exceptions=True)

        outcomes: List[ItemOutcome] = []
        cancelled: Optional[SweepCancelledError] = None
        for result in results:
            if isinstance(result, SweepCancelledError):
                cancelled = result
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)
        if cancelled is not None:
            raise cancelled
        return outcomes

    async def _publish(
        self, decision: MessageDecision, lease_handle: str, context: LogContext
    ) -> ItemOutcome:
        reference, result = self._payload(decision)

        try:
            await self._store.put(
                self._config.result_container, decision.output_name, result.data, result.content_type
            )
        except Exception as e:  # noqa: BLE001
            return self._failed_outcome(decision, "upload result", e, context)
        self._logger.info(f"Uploaded: {decision.output_name}", context)

        warnings: List[str] = []
        try:
            await self._store.delete(self._config.staging_container, reference.staged_object_name)
            self._logger.info(f"Deleted staged object: {reference.staged_object_name}", context)
        except Exception as e:  # noqa: BLE001
            warnings.append(f"{decision.item}: failed to delete staged object {reference.staged_object_name}: {e}")
            self._logger.warning(f"Cleanup failed for staged object {reference.staged_object_name}: {e}", context)
        try:
            await self._queue.delete_leased(self._config.queue_name, lease_handle)
            self._logger.info(f"Deleted queue message for: {decision.item}", context)
        except Exception as e:  # noqa: BLE001
            warnings.append(f"{decision.item}: failed to delete queue message: {e}")
            self._logger.warning(f"Cleanup failed for queue message of {decision.item}: {e}", context)

        return self._success_outcome(decision, tuple(warnings))

    @staticmethod
    def _payload(decision: MessageDecision) -> Tuple[StagedReference, TransformResult]:
        if decision.reference is None or decision.transform is None:
            raise ImagesQueueError(f"Process decision for {decision.item} has no transformed image")
        return decision.reference, decision.transform

    def _failure(
        self,
        item: str,
        body: str,
        step: str,
        error: BaseException,
        delivery_count: int,
        reference: Optional[StagedReference] = None,
    ) -> MessageDecision:
        category = classify_failure(error)
        reason = f"{step} failed ({category}): {error}"
        self._logger.error(
            f"Failed to process {item}: {reason}", exc_info=category == "unexpected error"
        )
        limit = self._config.max_delivery_count
        action = MessageAction.LEAVE
        if is_payload_error(error) and limit > 0 and delivery_count >= limit:
            action = MessageAction.DEAD_LETTER
        return MessageDecision(action=action, item=item, body=body, reason=reason, reference=reference)

    def _sweep_failure(self, step: str, error: BaseException) -> ItemOutcome:
        reason = f"{step} failed ({classify_failure(error)}): {error}"
        self._logger.error(f"Queue sweep aborted: {reason}")
        return ItemOutcome(item=f"queue {self._config.queue_name}", kind=OutcomeKind.FAIL, reason=reason, action=step)

    def _success_outcome(self, decision: MessageDecision, warnings: tuple = ()) -> ItemOutcome:
        result = decision.transform
        return ItemOutcome(
            item=decision.item,
            kind=OutcomeKind.SUCCESS,
            action="upload result, delete staged object and message",
            output_name=decision.output_name,
            source_size=result.source_size if result else None,
            target_size=result.target_size if result else None,
            warnings=warnings,
        )

    def _orphan_outcome(self, decision: MessageDecision) -> ItemOutcome:
        return ItemOutcome(
            item=decision.item,
            kind=OutcomeKind.ORPHAN,
            reason=decision.reason,
            action="delete orphaned message",
        )

    def _dead_letter_outcome(self, decision: MessageDecision) -> ItemOutcome:
        return ItemOutcome(
            item=decision.item,
            kind=OutcomeKind.FAIL,
            reason=f"{decision.reason} (moved to {self._config.poison_queue_name})",
            action="dead-letter",
        )

    def _leave_outcome(self, decision: MessageDecision) -> ItemOutcome:
        return ItemOutcome(
            item=decision.item,
            kind=OutcomeKind.FAIL,
            reason=decision.reason,
            action="leave message for redelivery",
        )

    def _failed_outcome(
        self, decision: MessageDecision, step: str, error: BaseException, context: LogContext
    ) -> ItemOutcome:
        reason = f"{step} failed ({classify_failure(error)}): {error}"
        self._logger.error(f"Failed to process {decision.item}: {reason}", context)
        return ItemOutcome(
            item=decision.item,
            kind=OutcomeKind.FAIL,
            reason=reason,
            action="leave message for redelivery",
        )
