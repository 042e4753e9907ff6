"""
SQLAlchemy table definitions and shared enums.

Models:
    base: Declarative base and shared enums (SendStatus, JobKind)
    tabnine_usage: DX-owned ``custom.tabnine_daily_usages`` table written
        by the Tabnine usage importer

Usage:
    from models.base import SendStatus, JobKind
    from models.tabnine_usage import tabnine_daily_usages, TABNINE_COLUMNS

The DX database schema is not managed here; tables are declared only so
that INSERT statements can be compiled against them.
"""

__all__ = [
    "Base",
    "SendStatus",
    "JobKind",
    "tabnine_daily_usages",
    "TABNINE_COLUMNS",
]
