"""
Base abstractions shared by readers, sinks and the runner
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict
import logging

from schemas.results import SendResult

logger = logging.getLogger(__name__)


@dataclass
class WorkUnit:
    """
    One unit of work in source order.

    Attributes:
        source: Originating file or source name (written to the failure log)
        position: Resume position of this unit (e.g. {"file": ..., "row": ...})
        record: Raw record, column name -> value
    """

    source: str
    position: Dict[str, Any]
    record: Dict[str, Any] = field(default_factory=dict)


class Sink(ABC):
    """
    Abstract destination for payloads.

    Responsibilities:
    - Deliver exactly one payload per call (one HTTP request, one INSERT batch)
    - Raise ``TransientSinkError``/``RateLimitSignal`` for failures worth
      retrying and ``PermanentSinkError`` for the rest
    - Describe a payload for dry-run previews

    Retrying, throttling and dry-run are handled by ``ResilientSender``.
    """

    @property
    @abstractmethod
    def target(self) -> str:
        """URL or table name, for logs"""
        pass

    @abstractmethod
    async def deliver(self, payload: Any) -> SendResult:
        """
        Deliver one payload.

        Returns:
            SendResult with SUCCESS status

        Raises:
            SinkError subclasses on failure
        """
        pass

    @abstractmethod
    def preview(self, payload: Any) -> str:
        """Single-line rendering of what ``deliver`` would send"""
        pass

    async def aclose(self) -> None:
        """Release connections held by the sink"""
        return None
