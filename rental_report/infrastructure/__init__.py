"""
Infrastructure package for the rental report.

Centralizes database connectivity concerns (connection factory, pooling).
Keep this layer focused on I/O and resource management, decoupled from
aggregation/orchestration logic.
"""

from rental_report.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    build_dsn,
)

__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "build_dsn",
]
