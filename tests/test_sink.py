import json
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import MetaData, create_engine, select, update

from logpond.db import DuckDBSink, ErrorSink, row_values
from logpond.domain import access_log_table
from logpond.errors import SinkCreationFailure
from logpond.services.ingestion import Enricher
from logpond.services.logparser.schemas import OutputRow, RawLine, RowError


@pytest.fixture
def rows(enricher: Enricher, load_valid_ipv4_log: list[str]) -> list[OutputRow]:
    return [enricher.enrich(RawLine(number, text)) for number, text in enumerate(load_valid_ipv4_log, start=1)]


@pytest.fixture
def sink(tmp_path: Path):
    sink = DuckDBSink(tmp_path / "access.db")
    sink.open()
    yield sink
    sink.close()


def test_open_creates_empty_database(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "access.db"
    sink = DuckDBSink(path)
    sink.open()
    try:
        assert path.exists()
        assert sink.count() == 0
        assert sink.latest_timestamp() is None
    finally:
        sink.close()


def test_row_values_serialize_queries(rows: list[OutputRow]) -> None:
    values = row_values(rows[0])

    assert "line_number" not in values
    assert json.loads(values["parsed_query"]) == {"x": ["1"]}
    assert json.loads(values["referer_parsed_query"]) == {"y": ["2"]}
    assert values["timestamp"] == datetime(2023, 10, 10, 20, 55, 36)


def test_insert_and_read_back(sink: DuckDBSink, rows: list[OutputRow]) -> None:
    assert all(isinstance(row, OutputRow) for row in rows)

    assert sink.insert_batch(rows) == []
    assert sink.count() == len(rows)
    assert sink.inserted == len(rows)
    assert sink.latest_timestamp() == datetime(2023, 10, 10, 20, 55, 36)

    with sink.engine.connect() as conn:
        stored = conn.execute(
            select(sink.table.c.ip, sink.table.c.status_code, sink.table.c.size).where(sink.table.c.ip == "8.8.8.8")
        ).one()
    assert tuple(stored) == ("8.8.8.8", 302, None)


def test_insert_empty_batch(sink: DuckDBSink) -> None:
    assert sink.insert_batch([]) == []
    assert sink.count() == 0


def test_rejected_row_does_not_block_the_batch(sink: DuckDBSink, rows: list[OutputRow]) -> None:
    rows[2] = replace(rows[2], status_code=70000)

    errors = sink.insert_batch(rows)

    assert len(errors) == 1
    assert isinstance(errors[0], RowError)
    assert errors[0].line_number == 3
    assert errors[0].raw_line == rows[2].raw_line
    assert errors[0].reason.startswith("Insert failed")
    assert sink.count() == len(rows) - 1


def test_reopen_keeps_rows(tmp_path: Path, rows: list[OutputRow]) -> None:
    path = tmp_path / "access.db"
    first = DuckDBSink(path)
    first.open()
    first.insert_batch(rows[:2])
    first.close()

    second = DuckDBSink(path)
    second.open()
    try:
        assert second.count() == 2
    finally:
        second.close()


def test_schema_version_mismatch(tmp_path: Path) -> None:
    path = tmp_path / "access.db"
    sink = DuckDBSink(path)
    sink.open()
    with sink.engine.begin() as conn:
        conn.execute(update(sink.meta).values(value="1"))
    sink.close()

    with pytest.raises(SinkCreationFailure, match="schema version 1"):
        DuckDBSink(path).open()


def test_existing_table_without_version(tmp_path: Path) -> None:
    path = tmp_path / "access.db"
    engine = create_engine(f"duckdb:///{path}")
    metadata = MetaData()
    access_log_table(metadata)
    metadata.create_all(engine)
    engine.dispose()

    with pytest.raises(SinkCreationFailure, match="no recorded schema version"):
        DuckDBSink(path).open()


def test_close_is_idempotent(sink: DuckDBSink) -> None:
    sink.close()
    sink.close()

    with pytest.raises(SinkCreationFailure):
        sink.count()


@pytest.mark.asyncio
async def test_error_sink_is_created_on_first_error(tmp_path: Path) -> None:
    path = tmp_path / "access.err"
    error_sink = ErrorSink(path)

    assert not error_sink.created
    assert not path.exists()

    await error_sink.write(RowError(3, "bad line", "Invalid status code\n'abc'"))
    await error_sink.write(RowError(7, "worse line", "Invalid IP"))
    await error_sink.close()

    assert error_sink.created
    assert error_sink.count == 2
    assert path.read_text(encoding="utf-8").splitlines() == [
        "3\tInvalid status code 'abc'\tbad line",
        "7\tInvalid IP\tworse line",
    ]


@pytest.mark.asyncio
async def test_error_sink_without_errors(tmp_path: Path) -> None:
    path = tmp_path / "access.err"
    error_sink = ErrorSink(path)
    await error_sink.close()

    assert not path.exists()


def test_remove_stale_error_file(tmp_path: Path) -> None:
    path = tmp_path / "access.err"
    path.write_text("1\told\tline\n", encoding="utf-8")

    ErrorSink(path).remove_stale()
    ErrorSink(path).remove_stale()

    assert not path.exists()
