"""
Load rows into PostgreSQL with INSERT ... ON CONFLICT DO NOTHING (idempotency)
"""

from typing import Any, Dict, List, Sequence
from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
import logging

from ingestion.base import Sink
from models.base import SendStatus
from schemas.payloads import DXPayload
from schemas.results import SendResult
from core.exceptions import PermanentSinkError, TransientSinkError

logger = logging.getLogger(__name__)


def to_row(item: Any) -> Dict[str, Any]:
    if isinstance(item, DXPayload):
        return item.model_dump()
    return dict(item)


class PostgresSink(Sink):
    """
    Insert one batch of rows per delivery.

    Ensures:
    - No duplicate rows on repeated runs (ON CONFLICT DO NOTHING)
    - Each batch is its own transaction

    Connection loss and operational errors are transient; constraint and
    data errors are permanent.
    """

    def __init__(self, engine: AsyncEngine, table: Table):
        self.engine = engine
        self.table = table

    @property
    def target(self) -> str:
        return self.table.fullname

    def preview(self, payload: Sequence[Any]) -> str:
        return f"INSERT INTO {self.target} ({len(payload)} rows) ON CONFLICT DO NOTHING"

    async def deliver(self, payload: Sequence[Any]) -> SendResult:
        rows: List[Dict[str, Any]] = [to_row(item) for item in payload]
        if not rows:
            return SendResult(status=SendStatus.SUCCESS, data=0)

        stmt = insert(self.table).values(rows).on_conflict_do_nothing()

        try:
            async with self.engine.begin() as conn:
                await conn.execute(stmt)
        except (OperationalError, InterfaceError) as e:
            raise TransientSinkError(
                "Database unavailable",
                context={"target": self.target, "rows": len(rows)},
                original_exception=e,
            )
        except DBAPIError as e:
            if e.connection_invalidated:
                raise TransientSinkError(
                    "Database connection lost",
                    context={"target": self.target, "rows": len(rows)},
                    original_exception=e,
                )
            raise PermanentSinkError(
                "Insert rejected by database",
                context={"target": self.target, "rows": len(rows)},
                original_exception=e,
            )
        except OSError as e:
            raise TransientSinkError(
                "Database connection failed",
                context={"target": self.target},
                original_exception=e,
            )
        except SQLAlchemyError as e:
            raise PermanentSinkError(
                "Insert failed",
                context={"target": self.target, "rows": len(rows)},
                original_exception=e,
            )

        logger.info(f"Inserted {len(rows)} rows into {self.target}")
        return SendResult(status=SendStatus.SUCCESS, data=len(rows))

    async def aclose(self) -> None:
        await self.engine.dispose()
