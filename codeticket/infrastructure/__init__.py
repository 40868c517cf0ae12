"""
Infrastructure package for the codeticket import job.

Centralizes database concerns: connection factories and pooling, the schema
DDL, and the PostgreSQL execution ledger. Keep this layer focused on I/O and
resource management, decoupled from step/orchestrator logic.
"""

from codeticket.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    build_dsn,
    get_sync_connection,
    get_sync_pool,
)
from codeticket.infrastructure.ledger import PostgresExecutionLedger

__all__ = [
    "PoolManager",
    "PostgresExecutionLedger",
    "apply_statement_timeout",
    "build_dsn",
    "get_sync_connection",
    "get_sync_pool",
]
