"""
Resume marker persistence.

The marker points at the last completed unit of work. It is overwritten
after every unit, deleted when a run finishes cleanly and left in place
when a run aborts, so the next run can continue where this one stopped.
The unit that was in flight at crash time may be delivered twice.

Format (JSON):
    {"version": 1, "job_kind": "pipelines",
     "position": {"file": "chunk_3.csv", "row": 41},
     "completed_units": 2042, "updated_at": "..."}

Legacy files holding ``<group>|||<username>`` are still read.
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError
import logging

from ingestion.transformers.fields import parse_bool
from schemas.results import ResumeState
from core.exceptions import ResumeStateError

logger = logging.getLogger(__name__)

LEGACY_SEPARATOR = "|||"


def describe_position(position: Dict[str, Any]) -> str:
    return ", ".join(f"{key}={value}" for key, value in position.items()) or "start"


class ResumeTracker:
    """
    Load, save and clear the resume marker for one job.

    Args:
        state_file: Marker path
        job_kind: Job owning the marker; a marker from another job is an error
        auto_resume: Resume without asking when a marker exists
        prompt: Input function used to ask whether to resume
    """

    def __init__(
        self,
        state_file: Path,
        job_kind: str,
        auto_resume: bool = False,
        prompt: Callable[[str], str] = input,
    ):
        self.state_file = Path(state_file)
        self.job_kind = job_kind
        self.auto_resume = auto_resume
        self.prompt = prompt

    def load(self) -> Optional[ResumeState]:
        """Current marker, or None when there is none"""
        if not self.state_file.exists():
            return None

        try:
            text = self.state_file.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ResumeStateError(
                "Could not read resume marker",
                context={"state_file": str(self.state_file), "operation": "read"},
                original_exception=e
            )

        if not text:
            return None

        if not text.startswith("{") and LEGACY_SEPARATOR in text:
            group, _, username = text.partition(LEGACY_SEPARATOR)
            logger.info(f"Read legacy resume marker from {self.state_file}")
            return ResumeState(
                job_kind=self.job_kind,
                position={"group": group.strip(), "username": username.strip()},
            )

        try:
            state = ResumeState.model_validate_json(text)
        except ValidationError as e:
            raise ResumeStateError(
                "Resume marker is not valid",
                context={"state_file": str(self.state_file), "operation": "read"},
                original_exception=e
            )

        if state.job_kind != self.job_kind:
            raise ResumeStateError(
                f"Resume marker belongs to job '{state.job_kind}'",
                context={"state_file": str(self.state_file), "operation": "read"}
            )
        return state

    def save(self, position: Dict[str, Any], completed_units: int) -> ResumeState:
        """Record ``position`` as the last completed unit"""
        state = ResumeState(
            job_kind=self.job_kind,
            position=position,
            completed_units=completed_units,
        )
        tmp_path = self.state_file.with_name(self.state_file.name + ".tmp")
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(state.model_dump_json(), encoding="utf-8")
            os.replace(tmp_path, self.state_file)
        except OSError as e:
            raise ResumeStateError(
                "Could not write resume marker",
                context={"state_file": str(self.state_file), "operation": "write"},
                original_exception=e
            )
        return state

    def clear(self) -> None:
        """Delete the marker (run finished, or resume declined)"""
        try:
            self.state_file.unlink(missing_ok=True)
        except OSError as e:
            raise ResumeStateError(
                "Could not delete resume marker",
                context={"state_file": str(self.state_file), "operation": "clear"},
                original_exception=e
            )

    def resume_point(self) -> Optional[ResumeState]:
        """
        Marker to resume from, after asking the operator when needed.

        An empty answer (or closed stdin) resumes. Only an explicit no
        discards the marker, and the run then starts from the beginning.
        """
        state = self.load()
        if state is None:
            return None

        where = describe_position(state.position)
        if self.auto_resume:
            logger.info(f"Resuming after {where}")
            return state

        try:
            answer = self.prompt(f"Resume marker found ({where}). Resume? [Y/n] ")
        except EOFError:
            answer = ""

        if parse_bool(answer) is not False:
            logger.info(f"Resuming after {where}")
            return state

        logger.info("Resume declined; starting from the beginning")
        self.clear()
        return None
