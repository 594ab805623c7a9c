"""Log ingestion service - streams a log file into the output sinks.

This service orchestrates:
- Reading the log file line by line (aiofiles)
- Enrichment of each line via Enricher, optionally on a bounded thread pool
- Batched persistence via DuckDBSink
- Rejected lines via ErrorSink

Rows reach the sinks in source line order whatever the worker count.
"""
from __future__ import annotations

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles

from logpond.db.sink import DuckDBSink, ErrorSink
from logpond.errors import ResourceLoadFailure, UrlResolutionFailure
from logpond.services.geo import GeoResolver, open_source
from logpond.services.logparser import LogParser, UrlDecomposer
from logpond.services.logparser.schemas import (
    OutputRow,
    RawLine,
    RowError,
    RowOutcome,
    RunSummary,
    SkippedLine,
)
from logpond.services.useragent import UserAgentClassifier, load_ruleset
from .assembler import Enricher

if TYPE_CHECKING:
    from logpond.config.settings import Settings


logger = logging.getLogger(__name__)


def check_input(log_path: Path) -> None:
    """Fail fast when the input file cannot be read."""
    if not log_path.is_file():
        raise ResourceLoadFailure(f"Log file {log_path} does not exist.")
    if not os.access(log_path, os.R_OK):
        raise ResourceLoadFailure(f"Log file {log_path} is not readable.")


class IngestionService:
    """Orchestrates enrichment and persistence of one log file.

    Example:
        service = IngestionService(enricher=enricher, sink=sink, error_sink=error_sink)
        summary = await service.run(Path("access.log"))
    """

    def __init__(
        self,
        enricher: Enricher,
        sink: DuckDBSink,
        error_sink: ErrorSink,
        *,
        batch_size: int = 1000,
        workers: int = 1,
        resume: bool = True,
        progress_every: int = 50_000,
        encoding: str = "utf-8",
    ) -> None:
        """Initialize the ingestion service.

        Args:
            enricher: Turns raw lines into OutputRow/RowError/SkippedLine.
            sink: Open output database sink.
            error_sink: Rejected lines file (created lazily).
            batch_size: Lines per enrichment and insert batch.
            workers: Enrichment threads. 1 enriches inline.
            resume: Skip lines not newer than the latest stored row.
            progress_every: Log a progress line every N processed lines.
            encoding: Text encoding of the log file.
        """
        self.enricher = enricher
        self.sink = sink
        self.error_sink = error_sink
        self.batch_size = batch_size
        self.workers = workers
        self.resume = resume
        self.progress_every = progress_every
        self.encoding = encoding

        self._executor: ThreadPoolExecutor | None = None
        self._next_progress = progress_every

    def enrich_batch(self, batch: list[RawLine]) -> list[RowOutcome]:
        """Enrich a batch, keeping the input order."""
        if self._executor is None:
            return [self.enricher.enrich(raw) for raw in batch]
        return list(self._executor.map(self.enricher.enrich, batch))

    async def run(self, log_path: Path) -> RunSummary:
        """Import ``log_path`` and return the run counters."""
        check_input(log_path)
        summary = RunSummary(output_path=str(self.sink.path))

        if self.resume:
            since = await asyncio.to_thread(self.sink.latest_timestamp)
            if since is not None:
                logger.info("Resuming import: skipping lines up to %s UTC", since)
            self.enricher.since = since

        if self.workers > 1:
            self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="enrich")

        logger.info("Searching new logs in %s (batch_size=%d, workers=%d)", log_path, self.batch_size, self.workers)
        try:
            batch: list[RawLine] = []
            async with aiofiles.open(log_path, "r", encoding=self.encoding, errors="replace") as file:
                number = 0
                async for text in file:
                    number += 1
                    text = text.rstrip("\r\n")
                    if not text.strip():
                        continue
                    batch.append(RawLine(number, text))
                    if len(batch) >= self.batch_size:
                        await self._process_batch(batch, summary)
                        batch = []
            if batch:
                await self._process_batch(batch, summary)
        except OSError as e:
            raise ResourceLoadFailure(f"Cannot read log file {log_path}: {e}") from e
        finally:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
            await self.error_sink.close()

        summary.error_path = str(self.error_sink.path) if self.error_sink.created else None
        summary.cache_stats = {
            **self.enricher.classifier.cache.stats(),
            **self.enricher.geo.cache.stats(),
        }
        logger.info("Process finished!")
        logger.info(
            "%d logs added to the database %s (%d processed, %d skipped, %d errors)",
            summary.written,
            summary.output_path,
            summary.processed,
            summary.skipped,
            summary.errors,
        )
        if summary.error_path:
            logger.info("Errors are logged in the file %s", summary.error_path)
        return summary

    async def _process_batch(self, batch: list[RawLine], summary: RunSummary) -> None:
        """Enrich, insert and record errors for one batch."""
        outcomes = await asyncio.to_thread(self.enrich_batch, batch)

        rows: list[OutputRow] = []
        errors: list[RowError] = []
        for outcome in outcomes:
            if isinstance(outcome, OutputRow):
                rows.append(outcome)
            elif isinstance(outcome, RowError):
                errors.append(outcome)
            elif isinstance(outcome, SkippedLine):
                summary.skipped += 1

        insert_errors = await asyncio.to_thread(self.sink.insert_batch, rows)
        if insert_errors:
            errors = sorted(errors + insert_errors, key=lambda error: error.line_number)

        for error in errors:
            logger.debug("Rejected line %d: %s", error.line_number, error.reason)
            await self.error_sink.write(error)

        summary.processed += len(outcomes)
        summary.written += len(rows) - len(insert_errors)
        summary.errors += len(errors)
        logger.debug(
            "Committed %d records. (Rows: %d | Errors: %d)",
            len(outcomes),
            len(rows) - len(insert_errors),
            len(errors),
        )

        while summary.processed >= self._next_progress:
            logger.info("Adding new logs: %d", summary.processed)
            self._next_progress += self.progress_every


async def run_from_settings(settings: "Settings") -> RunSummary:
    """Load every resource named by ``settings`` and import the log file.

    Resource problems raise ResourceLoadFailure or SinkCreationFailure before
    any line is processed.
    """
    log_path = settings.input.log_path
    check_input(log_path)

    try:
        urls = UrlDecomposer(settings.input.origin)
    except UrlResolutionFailure as e:
        raise ResourceLoadFailure(str(e)) from e

    ruleset = await asyncio.to_thread(load_ruleset, settings.useragent.rules_path)
    source = await asyncio.to_thread(
        open_source,
        settings.geoip.db_path,
        settings.geoip.format,
        settings.geoip.asn_db_path,
    )
    geo = GeoResolver(source)

    error_sink = ErrorSink(settings.error_path, encoding="utf-8")
    sink = DuckDBSink(settings.db_path, settings.output.table, echo=settings.debug)
    try:
        error_sink.remove_stale()
        await asyncio.to_thread(sink.open)

        enricher = Enricher(LogParser(), urls, UserAgentClassifier(ruleset), geo)
        service = IngestionService(
            enricher,
            sink,
            error_sink,
            batch_size=settings.output.batch_size,
            workers=settings.pipeline.workers,
            resume=settings.output.resume,
            progress_every=settings.pipeline.progress_every,
            encoding=settings.input.encoding,
        )
        return await service.run(log_path)
    finally:
        sink.close()
        geo.close()
