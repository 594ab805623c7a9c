"""Exception hierarchy.

Line-scoped problems (``MalformedLine``, ``UrlResolutionFailure``) never escape
the pipeline: they are turned into row errors or empty URL parts. Startup
problems (``ResourceLoadFailure``, ``SinkCreationFailure``) are fatal.
"""
from __future__ import annotations


class LogPondError(Exception):
    """Base class for all logpond errors."""


class MalformedLine(LogPondError):
    """A log line does not match the combined log layout."""

    def __init__(self, field: str, reason: str | None = None) -> None:
        self.field = field
        self.reason = reason or f"Invalid {field}"
        super().__init__(self.reason)


class UrlResolutionFailure(LogPondError):
    """A request path or referer cannot be decomposed."""


class ResourceLoadFailure(LogPondError):
    """Input file, user-agent ruleset or geo dataset could not be loaded."""


class SinkCreationFailure(LogPondError):
    """Output database or error file could not be created."""
