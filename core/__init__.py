"""
Core utilities and configuration for the DX importers.

Modules:
    config: Environment fallbacks (Settings) and per-run JobConfig
    database: Async SQLAlchemy engine creation for Postgres sources and sinks
    exceptions: Exception hierarchy and retry classification
    logging: Logging configuration

Usage:
    from core.config import JobConfig, get_settings
    from core.database import build_engine
    from core.exceptions import ConfigurationError, TransientSinkError
    from core.logging import setup_logging
"""

__all__ = [
    "config",
    "database",
    "exceptions",
    "logging",
]
