# ============================================================================
# File: ingestion/runner.py
# Description: Import orchestrator with per-record error isolation and resume
# ============================================================================
"""
Import Runner - drives Read -> Transform -> Send for one job.

This module provides:
- Per-record error isolation (a bad record never halts the run)
- Failure log rows for every rejected or failed record
- Resume marker updates after every completed unit
- Contiguous sharding across concurrent workers sharing one limiter
"""

import asyncio
import math
from functools import reduce
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging

from ingestion.base import Sink, WorkUnit
from ingestion.audit_log import AuditLog, FailureLogger
from ingestion.checkpoint import ResumeTracker, describe_position
from ingestion.sender import ResilientSender
from ingestion.transformers.normalizer import RecordTransformer
from schemas.payloads import DXPayload
from schemas.results import Rejection, RunSummary, SendResult

logger = logging.getLogger(__name__)

SuccessRow = Callable[[DXPayload, SendResult], Dict[str, Any]]
SinkResolver = Callable[[WorkUnit], Optional[Sink]]


def shard(items: List[Any], partitions: int) -> List[List[Any]]:
    """Split into at most ``partitions`` contiguous slices of ceil(n / partitions)"""
    if not items:
        return []
    size = max(1, math.ceil(len(items) / max(1, partitions)))
    return [items[i:i + size] for i in range(0, len(items), size)]


class ImportRunner:
    """
    Import orchestrator.

    Responsibilities:
    - Transform each unit's record; count and log rejections
    - Send payloads through the ResilientSender
    - Route every non-success outcome to the failure log
    - Advance the resume marker after each completed unit
    - Report run counts

    Args:
        job_kind: Job name for summaries and the resume marker
        sender: Configured ResilientSender (sink, limiter, dry-run)
        failure_log: Failure CSV (optional)
        tracker: Resume marker (optional)
        success_log: Success CSV (optional), rows built by ``success_row``
        sink_for: Per-unit sink override (e.g. per-row base URL/token)
    """

    def __init__(
        self,
        job_kind: str,
        sender: ResilientSender,
        failure_log: Optional[FailureLogger] = None,
        tracker: Optional[ResumeTracker] = None,
        success_log: Optional[AuditLog] = None,
        success_row: Optional[SuccessRow] = None,
        sink_for: Optional[SinkResolver] = None,
    ):
        self.job_kind = job_kind
        self.sender = sender
        self.failure_log = failure_log
        self.tracker = tracker
        self.success_log = success_log
        self.success_row = success_row
        self.sink_for = sink_for

    def new_summary(self) -> RunSummary:
        return RunSummary(job_kind=self.job_kind, dry_run=self.sender.dry_run)

    def log_failure(self, unit: WorkUnit, reference_id: Optional[str], message: str, payload: Any) -> None:
        """Failure log row for ``unit`` (no-op without a failure log)"""
        if self.failure_log is not None:
            self.failure_log.log_failure(unit.source, reference_id, message, payload)

    def reject(self, unit: WorkUnit, rejection: Rejection, summary: RunSummary) -> None:
        """Count, log and record a rejected unit"""
        summary.records_rejected += 1
        logger.warning(
            f"[{unit.source}] {describe_position(unit.position)} "
            f"ref={rejection.reference_id}: rejected ({rejection.reason})"
        )
        self.log_failure(unit, rejection.reference_id, f"Rejected: {rejection.reason}", unit.record)

    async def process_unit(
        self,
        unit: WorkUnit,
        transformer: RecordTransformer,
        summary: RunSummary,
    ) -> None:
        """Transform and send one unit; never raises for per-record problems"""
        summary.records_read += 1
        reference_id = transformer.reference_id(unit.record)
        where = f"[{unit.source}] {describe_position(unit.position)}"

        try:
            result = transformer.transform(unit.record)

            if isinstance(result, Rejection):
                self.reject(unit, result, summary)
                return

            sink = self.sink_for(unit) if self.sink_for else None
            send_result = await self.sender.send(result, sink=sink)

        except Exception as e:
            summary.records_failed += 1
            logger.exception(f"{where} ref={reference_id}: unexpected error")
            self.log_failure(unit, reference_id, str(e), unit.record)
            return

        if send_result.ok:
            summary.records_sent += 1
            label = "DRY_RUN" if send_result.dry_run else f"OK status={send_result.status_code}"
            logger.info(f"{where} ref={reference_id}: {label}")
            if self.success_log is not None and self.success_row is not None:
                self.success_log.append(self.success_row(result, send_result))
        else:
            summary.records_failed += 1
            logger.error(
                f"{where} ref={reference_id}: FAIL status={send_result.status_code} "
                f"attempts={send_result.attempts} {send_result.error}"
            )
            self.log_failure(unit, reference_id, send_result.error or "Delivery failed", result)

    async def run(self, units: Iterable[WorkUnit], transformer: RecordTransformer) -> RunSummary:
        """
        Process units sequentially in source order.

        With a resume marker, the first ``completed_units`` units (or, for
        legacy markers, every unit up to and including the marked position)
        are skipped. The marker is cleared once every unit was processed; a
        raised error (e.g. CSVParseError) leaves it in place.
        """
        summary = self.new_summary()

        resume = self.tracker.resume_point() if self.tracker else None
        skip_count = resume.completed_units if resume else 0
        skip_through = resume.position if (resume and not skip_count and resume.position) else None

        completed = 0
        for unit in units:
            if completed < skip_count:
                completed += 1
                summary.records_skipped += 1
                if completed == skip_count and resume.position and unit.position != resume.position:
                    logger.warning(
                        f"Resume position mismatch: marker at {describe_position(resume.position)}, "
                        f"unit {completed} is {describe_position(unit.position)}"
                    )
                continue

            if skip_through is not None:
                completed += 1
                summary.records_skipped += 1
                if unit.position == skip_through:
                    skip_through = None
                continue

            await self.process_unit(unit, transformer, summary)
            completed += 1
            if self.tracker is not None:
                self.tracker.save(unit.position, completed)

        if skip_through is not None:
            logger.warning(
                f"Resume position {describe_position(skip_through)} was never reached; nothing processed"
            )

        if self.tracker is not None and skip_through is None:
            self.tracker.clear()

        self.log_summary(summary)
        return summary

    async def run_sharded(
        self,
        units: Iterable[WorkUnit],
        transformer: RecordTransformer,
        partitions: int,
    ) -> RunSummary:
        """
        Process contiguous shards concurrently, one sequential worker per shard.

        All workers share the sender (and its limiter), so the aggregate rate
        stays under the configured ceiling.
        """
        shards = shard(list(units), partitions)
        logger.info(f"Processing {sum(len(s) for s in shards)} units in {len(shards)} partitions")

        async def worker(index: int, items: List[WorkUnit]) -> RunSummary:
            summary = self.new_summary()
            if index > 0:
                # Reserve a start slot so first calls are spaced too
                await self.sender.throttle()
            for unit in items:
                await self.process_unit(unit, transformer, summary)
            logger.info(f"Partition {index} done: {summary.records_sent} sent, {summary.records_failed} failed")
            return summary

        results = await asyncio.gather(*(worker(i, items) for i, items in enumerate(shards)))
        summary = reduce(lambda a, b: a.merge(b), results, self.new_summary())
        self.log_summary(summary)
        return summary

    def log_summary(self, summary: RunSummary) -> None:
        logger.info(
            f"{self.job_kind} run completed: {summary.status} - "
            f"read={summary.records_read} sent={summary.records_sent} "
            f"failed={summary.records_failed} rejected={summary.records_rejected} "
            f"skipped={summary.records_skipped}"
            + (" (dry run)" if summary.dry_run else "")
        )
