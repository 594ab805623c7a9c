"""Schemas for parsed log data - pure data, no ORM dependencies."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class HttpMethod(str, Enum):
    """Request method. Unknown verbs map to ``OTHER`` instead of failing."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    PATCH = "PATCH"
    TRACE = "TRACE"
    CONNECT = "CONNECT"
    OTHER = "OTHER"

    @classmethod
    def from_token(cls, token: str) -> "HttpMethod":
        # Case-sensitive: "get" is not GET.
        try:
            return cls(token)
        except ValueError:
            return cls.OTHER


class HttpVersion(str, Enum):
    """Request protocol version."""

    HTTP10 = "HTTP/1.0"
    HTTP11 = "HTTP/1.1"
    HTTP2 = "HTTP/2"
    HTTP3 = "HTTP/3"
    OTHER = "OTHER"

    @classmethod
    def from_token(cls, token: str) -> "HttpVersion":
        return _HTTP_VERSIONS.get(token, cls.OTHER)


_HTTP_VERSIONS = {
    "HTTP/1.0": HttpVersion.HTTP10,
    "HTTP/1.1": HttpVersion.HTTP11,
    "HTTP/2": HttpVersion.HTTP2,
    "HTTP/2.0": HttpVersion.HTTP2,
    "HTTP/3": HttpVersion.HTTP3,
    "HTTP/3.0": HttpVersion.HTTP3,
}


@dataclass(frozen=True)
class RawLine:
    """One unparsed log entry and its 1-based line number."""

    number: int
    text: str


@dataclass(frozen=True)
class ParsedLine:
    """Structured fields of one combined-log line."""

    ip: str
    identity: str | None
    user: str | None
    timestamp: datetime
    method: HttpMethod
    request_target: str
    http_version: HttpVersion
    status_code: int
    size: int | None
    referer: str | None
    user_agent: str | None


@dataclass(frozen=True)
class UrlParts:
    """Decomposed URL. Every field is None when the URL could not be resolved."""

    origin: str | None = None
    path: str | None = None
    extension: str | None = None
    query: str | None = None
    parsed_query: dict[str, list[str]] | None = None

    @property
    def is_empty(self) -> bool:
        return self.origin is None and self.path is None


@dataclass(frozen=True)
class UserAgentFacets:
    """Browser, OS and device facets of a user-agent string."""

    browser: str | None = None
    browser_major: int | None = None
    browser_minor: int | None = None
    browser_patch: int | None = None
    browser_patch_minor: int | None = None
    os: str | None = None
    os_major: int | None = None
    os_minor: int | None = None
    os_patch: int | None = None
    os_patch_minor: int | None = None
    device: str | None = None
    brand: str | None = None
    model: str | None = None


@dataclass(frozen=True)
class GeoFacts:
    """Geographic and network ownership facts of an IP address."""

    country: str | None = None
    continent: str | None = None
    asn: int | None = None
    as_name: str | None = None
    as_domain: str | None = None

    @property
    def is_unknown(self) -> bool:
        return self == UNKNOWN_GEO


UNKNOWN_AGENT = UserAgentFacets()
UNKNOWN_GEO = GeoFacts()


@dataclass(frozen=True)
class OutputRow:
    """Flattened, fully enriched record ready for the output table."""

    line_number: int
    raw_line: str
    ip: str
    identity: str | None
    user: str | None
    timestamp: datetime
    method: str
    path: str | None
    extension: str | None
    query: str | None
    parsed_query: dict[str, list[str]] | None
    http_version: str
    status_code: int
    size: int | None
    referer: str | None
    referer_origin: str | None
    referer_path: str | None
    referer_query: str | None
    referer_parsed_query: dict[str, list[str]] | None
    user_agent: str | None
    browser: str | None
    browser_major: int | None
    browser_minor: int | None
    browser_patch: int | None
    browser_patch_minor: int | None
    os: str | None
    os_major: int | None
    os_minor: int | None
    os_patch: int | None
    os_patch_minor: int | None
    device: str | None
    brand: str | None
    model: str | None
    country: str | None
    continent: str | None
    asn: int | None
    as_name: str | None
    as_domain: str | None


@dataclass(frozen=True)
class RowError:
    """A line that failed parsing or insertion."""

    line_number: int
    raw_line: str
    reason: str


@dataclass(frozen=True)
class SkippedLine:
    """A line already present in the output database (incremental import)."""

    line_number: int


RowOutcome = OutputRow | RowError | SkippedLine


@dataclass
class RunSummary:
    """Counters reported at the end of a run."""

    output_path: str
    error_path: str | None = None
    processed: int = 0
    written: int = 0
    errors: int = 0
    skipped: int = 0
    cache_stats: dict[str, int] = field(default_factory=dict)

    @property
    def exit_code(self) -> int:
        """0 for a clean run, 1 when some lines were rejected."""
        return 1 if self.errors else 0
