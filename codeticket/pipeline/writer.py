"""
Transactional chunk writer for the `importacao` table.

Each chunk is exactly one transaction: the records are stamped with their
import time, inserted with one parameterized statement per record
(executemany), and the chunk's restart checkpoint is saved through the ledger
on the same connection before commit. Any failure rolls all of it back.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Tuple

import psycopg
from psycopg import sql
from psycopg_pool import ConnectionPool

from codeticket.domain.models import ImportRecord
from codeticket.errors import ChunkWriteError
from codeticket.infrastructure.db_factory import apply_statement_timeout
from codeticket.pipeline.abstract import Chunk, ChunkAck, ChunkSink, ExecutionLedger
from codeticket.utils.clock import utc_now
from codeticket.utils.logging import get_logger

log = get_logger(__name__)

# (table column, ImportRecord attribute)
COLUMN_MAPPING: Tuple[Tuple[str, str], ...] = (
    ("cpf", "tax_id"),
    ("cliente", "customer_name"),
    ("nascimento", "birth_date"),
    ("evento", "event_name"),
    ("data", "event_date"),
    ("tipo_ingresso", "ticket_type"),
    ("valor", "amount"),
    ("hora_importacao", "imported_at"),
    ("taxa_adm", "admin_fee"),
)


def build_insert(table: str) -> sql.Composed:
    return sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values})").format(
        table=sql.Identifier(table),
        columns=sql.SQL(", ").join(sql.Identifier(column) for column, _ in COLUMN_MAPPING),
        values=sql.SQL(", ").join(
            sql.Placeholder(attribute) for _, attribute in COLUMN_MAPPING
        ),
    )


class PostgresChunkWriter(ChunkSink):
    """
    Persist chunks of ImportRecord into PostgreSQL, one transaction per chunk.

    Connection-level failures (lost connection, pool timeout, statement
    timeout) are reported as transient so the step may retry the chunk; data
    and constraint errors are not.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        ledger: ExecutionLedger,
        chunk_size: int = 200,
        table: str = "importacao",
        statement_timeout_ms: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._pool = pool
        self._ledger = ledger
        self.chunk_size = chunk_size
        self.table = table
        self.statement_timeout_ms = statement_timeout_ms
        self._clock = clock
        self._insert = build_insert(table)

    @staticmethod
    def _params(record: ImportRecord) -> Dict[str, Any]:
        return {attribute: getattr(record, attribute) for _, attribute in COLUMN_MAPPING}

    def write_chunk(self, chunk: Chunk) -> ChunkAck:
        if len(chunk.records) > self.chunk_size:
            raise ValueError(
                f"Chunk {chunk.index} holds {len(chunk.records)} records; "
                f"the limit is {self.chunk_size}"
            )

        committed_at = self._clock()
        params = [
            self._params(record.model_copy(update={"imported_at": committed_at}))
            for record in chunk.records
        ]

        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        apply_statement_timeout(cur, self.statement_timeout_ms)
                        if params:
                            cur.executemany(self._insert, params)
                    self._ledger.save_progress(chunk.run, chunk.progress, connection=conn)
        except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
            raise ChunkWriteError(
                f"Chunk {chunk.index} rolled back (connection): {exc}",
                resume_cursor=chunk.start_cursor,
                transient=True,
            ) from exc
        except psycopg.Error as exc:
            raise ChunkWriteError(
                f"Chunk {chunk.index} rolled back: {exc}",
                resume_cursor=chunk.start_cursor,
                transient=False,
            ) from exc

        log.debug(
            "Chunk persisted",
            extra={"chunk": chunk.index, "rows": len(params), "table": self.table},
        )
        return ChunkAck(index=chunk.index, rows_written=len(params), watermark=chunk.progress.watermark)


__all__ = ["COLUMN_MAPPING", "PostgresChunkWriter", "build_insert"]
