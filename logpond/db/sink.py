"""Output sinks: the DuckDB table and the rejected-lines file.

The table sink inserts rows in batches. When a batch is rejected it is rolled
back and replayed row by row, so only the offending rows turn into RowErrors.
The error file is opened on the first error only; a clean run leaves none.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import duckdb
from sqlalchemy import Engine, MetaData, create_engine, func, insert, inspect, select
from sqlalchemy.exc import SQLAlchemyError

from logpond.domain.logs.models import COLUMNS, SCHEMA_VERSION, access_log_table, meta_table
from logpond.domain.logs.utils import to_utc
from logpond.errors import SinkCreationFailure
from logpond.services.logparser.schemas import OutputRow, RowError


logger = logging.getLogger(__name__)

INSERT_ERRORS = (SQLAlchemyError, duckdb.Error)


def row_values(row: OutputRow) -> dict[str, Any]:
    """Column values for one row. Query maps are stored as JSON text."""
    values = asdict(row)
    values["timestamp"] = to_utc(row.timestamp)
    for key in ("parsed_query", "referer_parsed_query"):
        if values[key] is not None:
            values[key] = json.dumps(values[key], ensure_ascii=False)
    return {column: values[column] for column in COLUMNS}


class DuckDBSink:
    """Appends OutputRows to a DuckDB table through SQLAlchemy."""

    def __init__(self, path: Path, table: str = "log", *, echo: bool = False) -> None:
        self.path = path
        self.echo = echo
        self.metadata = MetaData()
        self.table = access_log_table(self.metadata, table)
        self.meta = meta_table(self.metadata)
        self.engine: Engine | None = None
        self.inserted = 0

    def open(self) -> None:
        """Create the database file and tables, checking the schema version."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(f"duckdb:///{self.path}", echo=self.echo)
            with self.engine.begin() as conn:
                has_table = inspect(conn).has_table(self.table.name)
                self.metadata.create_all(conn)
                stored = conn.execute(
                    select(self.meta.c.value).where(self.meta.c.key == "schema_version")
                ).scalar_one_or_none()
                if stored is None:
                    if has_table:
                        raise SinkCreationFailure(
                            f"{self.path}: table '{self.table.name}' has no recorded schema version"
                        )
                    conn.execute(insert(self.meta).values(key="schema_version", value=str(SCHEMA_VERSION)))
                elif stored != str(SCHEMA_VERSION):
                    raise SinkCreationFailure(
                        f"{self.path}: schema version {stored} does not match {SCHEMA_VERSION}"
                    )
        except SinkCreationFailure:
            self.close()
            raise
        except (OSError, *INSERT_ERRORS) as e:
            self.close()
            raise SinkCreationFailure(f"Cannot open output database {self.path}: {e}") from e
        logger.info("Opened output database %s (table '%s')", self.path, self.table.name)

    def _engine(self) -> Engine:
        if self.engine is None:
            raise SinkCreationFailure("Output database is not open")
        return self.engine

    def latest_timestamp(self) -> datetime | None:
        """Most recent stored timestamp (naive UTC), None for an empty table."""
        with self._engine().connect() as conn:
            return conn.execute(select(func.max(self.table.c.timestamp))).scalar()

    def count(self) -> int:
        with self._engine().connect() as conn:
            return conn.execute(select(func.count()).select_from(self.table)).scalar_one()

    def insert_batch(self, rows: list[OutputRow]) -> list[RowError]:
        """Insert rows in source order. Returns a RowError for each rejected row."""
        if not rows:
            return []
        engine = self._engine()
        values = [row_values(row) for row in rows]
        try:
            with engine.begin() as conn:
                conn.execute(insert(self.table), values)
        except INSERT_ERRORS as e:
            logger.warning("Batch insert of %d rows failed, retrying row by row: %s", len(rows), e)
        else:
            self.inserted += len(rows)
            return []

        errors: list[RowError] = []
        for row, value in zip(rows, values):
            try:
                with engine.begin() as conn:
                    conn.execute(insert(self.table), [value])
            except INSERT_ERRORS as e:
                reason = getattr(e, "orig", None) or e
                errors.append(RowError(row.line_number, row.raw_line, f"Insert failed: {reason}"))
            else:
                self.inserted += 1
        return errors

    def close(self) -> None:
        """Release the engine. Safe to call more than once."""
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None


def format_error(error: RowError) -> str:
    reason = " ".join(error.reason.split())
    return f"{error.line_number}\t{reason}\t{error.raw_line}\n"


class ErrorSink:
    """Rejected lines file, created on the first error.

    One line per failure: ``<line number>\\t<reason>\\t<raw line>``.
    """

    def __init__(self, path: Path, encoding: str = "utf-8") -> None:
        self.path = path
        self.encoding = encoding
        self.count = 0
        self._file = None

    @property
    def created(self) -> bool:
        return self._file is not None

    def remove_stale(self) -> None:
        """Delete an error file left by a previous run."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise SinkCreationFailure(f"Cannot remove stale error file {self.path}: {e}") from e

    async def write(self, error: RowError) -> None:
        if self._file is None:
            try:
                self._file = await aiofiles.open(self.path, "w", encoding=self.encoding)
            except OSError as e:
                raise SinkCreationFailure(f"Cannot create error file {self.path}: {e}") from e
            logger.info("Writing rejected lines to %s", self.path)
        await self._file.write(format_error(error))
        self.count += 1

    async def close(self) -> None:
        if self._file is not None:
            await self._file.close()
