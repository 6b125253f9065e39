"""Common functions shared by the producer and consumer sweeps."""

import asyncio
import time
from typing import List, Optional

from ..core.exceptions import SweepCancelledError
from ..core.models import ItemOutcome, OutcomeKind, RunResult
from ..core.config import PipelineConfig
from ..core.protocols import LoggerProtocol

SIMULATE_PREFIX = "[SIMULATE]"


def check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    """Raise SweepCancelledError once the cancellation signal is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise SweepCancelledError("Sweep cancelled before completion")


def action_message(simulate: bool, action: str) -> str:
    """Phrase an action as done or as would-be, depending on the mode."""
    if simulate:
        return f"{SIMULATE_PREFIX} Would {action[0].lower()}{action[1:]}"
    return action


def log_configuration(
    logger: LoggerProtocol, config: PipelineConfig, operation: str, simulate: bool
) -> None:
    """Log the sweep configuration banner."""
    logger.info("=" * 80)
    logger.info(f"{operation.upper()}{' (SIMULATE)' if simulate else ''}")
    logger.info("=" * 80)
    logger.info("CONFIGURATION:")
    logger.info(f"  Queue:             {config.queue_name}")
    logger.info(f"  Staging container: {config.staging_container}")
    logger.info(f"  Result container:  {config.result_container}")
    logger.info(f"  Size bounds:       [{config.min_size_bytes}, {config.max_size_bytes}] bytes")
    logger.info(f"  Batch size:        {config.batch_size}")
    logger.info("=" * 80)


class SweepRecorder:
    """
    Context manager that collects per-item outcomes and builds the RunResult.

    Exceptions raised inside the block (cancellation) are logged and propagated.
    """

    def __init__(self, operation_name: str, logger: LoggerProtocol, simulated: bool = False):
        self.operation_name = operation_name
        self.simulated = simulated
        self._logger = logger
        self._outcomes: List[ItemOutcome] = []
        self._start_time = time.time()

    def __enter__(self) -> "SweepRecorder":
        self._start_time = time.time()
        self._logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            self._logger.warning(
                f"{self.operation_name} stopped after {len(self._outcomes)} item(s): {exc_val}"
            )
        return False

    @property
    def outcomes(self) -> List[ItemOutcome]:
        return list(self._outcomes)

    def record(self, outcome: ItemOutcome) -> ItemOutcome:
        self._outcomes.append(outcome)
        return outcome

    def result(self) -> RunResult:
        """Build the immutable summary and log the final statistics."""
        kinds = [outcome.kind for outcome in self._outcomes]
        orphaned = kinds.count(OutcomeKind.ORPHAN)
        result = RunResult(
            processed=len(self._outcomes),
            succeeded=kinds.count(OutcomeKind.SUCCESS),
            skipped=kinds.count(OutcomeKind.SKIP) + orphaned,
            orphaned=orphaned,
            failed=kinds.count(OutcomeKind.FAIL),
            errors=tuple(
                f"{outcome.item}: {outcome.reason}"
                for outcome in self._outcomes
                if outcome.kind is OutcomeKind.FAIL
            ),
            warnings=tuple(w for outcome in self._outcomes for w in outcome.warnings),
            outcomes=tuple(self._outcomes),
            simulated=self.simulated,
            processing_time=time.time() - self._start_time,
        )
        self._log_final_statistics(result)
        return result

    def _log_final_statistics(self, result: RunResult) -> None:
        self._logger.info("=" * 80)
        self._logger.info(f"{self.operation_name.upper()} COMPLETED")
        self._logger.info("=" * 80)
        self._logger.info(f"Total execution time: {result.processing_time:.1f}s")
        self._logger.info(
            f"Processed: {result.processed}, Succeeded: {result.succeeded}, "
            f"Skipped: {result.skipped} (orphaned: {result.orphaned}), Failed: {result.failed}"
        )
        for i, error in enumerate(result.errors):
            self._logger.error(f"  Error {i + 1}/{len(result.errors)}: {error}")
        for warning in result.warnings:
            self._logger.warning(f"  Cleanup: {warning}")
        self._logger.info("=" * 80)
