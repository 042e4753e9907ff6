"""
Pydantic schemas for delivery outcomes, run summaries and persisted job state
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.base import SendStatus

RESUME_STATE_VERSION = 1


class SendResult(BaseModel):
    """Outcome of delivering one payload (after retries)"""

    model_config = ConfigDict(use_enum_values=False)

    status: SendStatus
    status_code: Optional[int] = None
    body: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    retry_after: Optional[float] = None
    data: Optional[Any] = None
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.status == SendStatus.SUCCESS


class Rejection(BaseModel):
    """A record the transformer refused to turn into a payload"""

    reason: str
    reference_id: Optional[str] = None
    missing_fields: list = Field(default_factory=list)


class FailureRecord(BaseModel):
    """One row of the failure log"""

    file: str
    reference_id: str
    error_message: str
    payload: str


class ResumeState(BaseModel):
    """
    Versioned resume marker.

    ``position`` identifies the last completed unit (e.g. file + row, or
    group + user); ``completed_units`` counts units completed in source order
    so a resumed run can skip them without re-reading state per unit.
    """

    version: int = RESUME_STATE_VERSION
    job_kind: str
    position: Dict[str, Any] = Field(default_factory=dict)
    completed_units: int = Field(0, ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RunSummary(BaseModel):
    """Counts reported at the end of a run"""

    job_kind: str
    records_read: int = 0
    records_sent: int = 0
    records_failed: int = 0
    records_rejected: int = 0
    records_skipped: int = 0
    dry_run: bool = False

    @property
    def status(self) -> str:
        if self.records_failed == 0 and self.records_rejected == 0:
            return "success"
        if self.records_sent == 0:
            return "failed"
        return "partial_success"

    def merge(self, other: "RunSummary") -> "RunSummary":
        """Combine the summaries of concurrent partitions"""
        return RunSummary(
            job_kind=self.job_kind,
            records_read=self.records_read + other.records_read,
            records_sent=self.records_sent + other.records_sent,
            records_failed=self.records_failed + other.records_failed,
            records_rejected=self.records_rejected + other.records_rejected,
            records_skipped=self.records_skipped + other.records_skipped,
            dry_run=self.dry_run or other.dry_run,
        )
