"""
DDL for the import table and the execution ledger table.

The import table layout (column names included) follows the externally
defined `importacao` schema; only its name is configurable.
"""

from __future__ import annotations

from psycopg import sql

LEDGER_TABLE = "batch_job_run"

LEDGER_DDL = sql.SQL(
    """
    CREATE TABLE IF NOT EXISTS {table} (
        job_name         TEXT        NOT NULL,
        run_id           INTEGER     NOT NULL,
        status           TEXT        NOT NULL,
        started_at       TIMESTAMPTZ NOT NULL,
        finished_at      TIMESTAMPTZ,
        watermark        BIGINT      NOT NULL DEFAULT 0,
        rows_written     BIGINT      NOT NULL DEFAULT 0,
        rows_skipped     BIGINT      NOT NULL DEFAULT 0,
        import_completed BOOLEAN     NOT NULL DEFAULT FALSE,
        resumed_from     INTEGER,
        exit_message     TEXT,
        source_files     JSONB       NOT NULL DEFAULT '[]'::jsonb,
        PRIMARY KEY (job_name, run_id),
        CHECK (status IN ('STARTING', 'IMPORT_IN_PROGRESS', 'IMPORT_DONE', 'ARCHIVE_DONE', 'FAILED'))
    );
    ALTER TABLE {table} ADD COLUMN IF NOT EXISTS source_files JSONB NOT NULL DEFAULT '[]'::jsonb;
    """
).format(table=sql.Identifier(LEDGER_TABLE))


def import_table_ddl(table: str) -> sql.Composed:
    """CREATE TABLE statement for the import table named `table`."""
    return sql.SQL(
        """
        CREATE TABLE IF NOT EXISTS {table} (
            id              BIGSERIAL     PRIMARY KEY,
            cpf             TEXT          NOT NULL CHECK (cpf <> ''),
            cliente         TEXT,
            nascimento      DATE,
            evento          TEXT,
            data            DATE,
            tipo_ingresso   TEXT,
            valor           NUMERIC(12,2) NOT NULL CHECK (valor >= 0),
            hora_importacao TIMESTAMPTZ   NOT NULL,
            taxa_adm        NUMERIC(12,2)
        );
        """
    ).format(table=sql.Identifier(table))


__all__ = ["LEDGER_DDL", "LEDGER_TABLE", "import_table_ddl"]
