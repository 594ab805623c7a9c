"""Row assembly: one raw line in, one tagged outcome out."""
from __future__ import annotations

import logging
from datetime import datetime

from logpond.domain.logs.utils import to_utc
from logpond.errors import MalformedLine
from logpond.services.geo import GeoResolver
from logpond.services.logparser import LogParser, UrlDecomposer
from logpond.services.logparser.schemas import (
    GeoFacts,
    OutputRow,
    ParsedLine,
    RawLine,
    RowError,
    RowOutcome,
    SkippedLine,
    UrlParts,
    UserAgentFacets,
)
from logpond.services.useragent import UserAgentClassifier


logger = logging.getLogger(__name__)


def assemble(
    raw: RawLine,
    parsed: ParsedLine,
    request: UrlParts,
    referer: UrlParts,
    agent: UserAgentFacets,
    geo: GeoFacts,
) -> OutputRow:
    """Flatten a parsed line and its facets into one OutputRow. Cannot fail."""
    if request.is_empty:
        logger.debug("Line %d: request target %r could not be resolved", raw.number, parsed.request_target)
    if parsed.referer and referer.is_empty:
        logger.debug("Line %d: referer %r could not be resolved", raw.number, parsed.referer)

    return OutputRow(
        line_number=raw.number,
        raw_line=raw.text,
        ip=parsed.ip,
        identity=parsed.identity,
        user=parsed.user,
        timestamp=parsed.timestamp,
        method=parsed.method.value,
        path=request.path,
        extension=request.extension,
        query=request.query,
        parsed_query=request.parsed_query,
        http_version=parsed.http_version.value,
        status_code=parsed.status_code,
        size=parsed.size,
        referer=parsed.referer,
        referer_origin=referer.origin,
        referer_path=referer.path,
        referer_query=referer.query,
        referer_parsed_query=referer.parsed_query,
        user_agent=parsed.user_agent,
        browser=agent.browser,
        browser_major=agent.browser_major,
        browser_minor=agent.browser_minor,
        browser_patch=agent.browser_patch,
        browser_patch_minor=agent.browser_patch_minor,
        os=agent.os,
        os_major=agent.os_major,
        os_minor=agent.os_minor,
        os_patch=agent.os_patch,
        os_patch_minor=agent.os_patch_minor,
        device=agent.device,
        brand=agent.brand,
        model=agent.model,
        country=geo.country,
        continent=geo.continent,
        asn=geo.asn,
        as_name=geo.as_name,
        as_domain=geo.as_domain,
    )


class Enricher:
    """Runs parse, URL decomposition, classification and geo lookup for a line.

    Every line-scoped failure is returned as a RowError, never raised.
    ``since`` enables incremental imports: lines not newer than it are skipped.
    """

    def __init__(
        self,
        parser: LogParser,
        urls: UrlDecomposer,
        classifier: UserAgentClassifier,
        geo: GeoResolver,
        since: datetime | None = None,
    ) -> None:
        self.parser = parser
        self.urls = urls
        self.classifier = classifier
        self.geo = geo
        self.since = since

    def enrich(self, raw: RawLine) -> RowOutcome:
        try:
            parsed = self.parser.parse_line(raw.text)
        except MalformedLine as e:
            return RowError(raw.number, raw.text, e.reason)

        if self.since is not None and to_utc(parsed.timestamp) <= self.since:
            return SkippedLine(raw.number)

        try:
            return assemble(
                raw,
                parsed,
                self.urls.request(parsed.request_target),
                self.urls.referer(parsed.referer),
                self.classifier.classify(parsed.user_agent),
                self.geo.resolve(parsed.ip),
            )
        except Exception as e:
            logger.exception("Unexpected error while enriching line %d", raw.number)
            return RowError(raw.number, raw.text, f"Enrichment failed: {e}")
