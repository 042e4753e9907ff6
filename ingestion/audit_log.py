"""
Append-only CSV audit logs (failures, successes)
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
import logging

from schemas.payloads import DXPayload
from schemas.results import FailureRecord

logger = logging.getLogger(__name__)

FAILURE_COLUMNS = ["file", "reference_id", "error_message", "payload"]
ERROR_MESSAGE_MAX_CHARS = 300


def serialize_payload(payload: Any) -> str:
    """Compact JSON of a payload or raw record, for replaying a failed row"""
    if payload is None:
        return ""
    if isinstance(payload, DXPayload):
        payload = payload.to_wire()
    elif isinstance(payload, (list, tuple)):
        payload = [p.to_wire() if isinstance(p, DXPayload) else p for p in payload]
    return json.dumps(payload, default=str, ensure_ascii=False)


class AuditLog:
    """
    Append rows to a CSV file with a fixed header.

    The header is written only when the file is missing or empty. Each
    append is a single synchronous write, so concurrent workers in one
    event loop never interleave lines.
    """

    def __init__(self, path: Path, columns: Sequence[str]):
        self.path = Path(path)
        self.columns = list(columns)
        self.rows_written = 0

    def _needs_header(self) -> bool:
        return not self.path.exists() or self.path.stat().st_size == 0

    def reset(self) -> None:
        """Start a fresh file holding only the header row"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame(columns=self.columns).to_csv(self.path, index=False)
        self.rows_written = 0

    def append_many(self, rows: Iterable[Dict[str, Any]]) -> int:
        rows = list(rows)
        if not rows:
            return 0

        df = pd.DataFrame(rows, dtype=object).reindex(columns=self.columns)
        df = df.fillna("")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(self.path, mode="a", header=self._needs_header(), index=False)
        self.rows_written += len(rows)
        return len(rows)

    def append(self, row: Dict[str, Any]) -> None:
        self.append_many([row])

    def read(self) -> List[Dict[str, str]]:
        """All rows written so far (empty when the file does not exist)"""
        if self._needs_header():
            return []
        return pd.read_csv(self.path, dtype=str, keep_default_na=False).to_dict(orient="records")


class FailureLogger(AuditLog):
    """One row per failed or rejected record: file, reference_id, error_message, payload"""

    def __init__(self, path: Path):
        super().__init__(path, FAILURE_COLUMNS)

    def log_failure(
        self,
        file: str,
        reference_id: Optional[str],
        error_message: str,
        payload: Any = None,
    ) -> FailureRecord:
        record = FailureRecord(
            file=file or "",
            reference_id=reference_id or "",
            error_message=(error_message or "")[:ERROR_MESSAGE_MAX_CHARS],
            payload=serialize_payload(payload),
        )
        self.append(record.model_dump())
        return record
