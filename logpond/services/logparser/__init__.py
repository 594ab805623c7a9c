"""Log parser module - parsing only, no database operations."""
from .logparser import LogParser, format_line
from .schemas import (
    GeoFacts,
    HttpMethod,
    HttpVersion,
    OutputRow,
    ParsedLine,
    RawLine,
    RowError,
    RunSummary,
    SkippedLine,
    UrlParts,
    UserAgentFacets,
)
from .urls import UrlDecomposer, decompose

__all__ = [
    "LogParser",
    "format_line",
    "GeoFacts",
    "HttpMethod",
    "HttpVersion",
    "OutputRow",
    "ParsedLine",
    "RawLine",
    "RowError",
    "RunSummary",
    "SkippedLine",
    "UrlParts",
    "UserAgentFacets",
    "UrlDecomposer",
    "decompose",
]
