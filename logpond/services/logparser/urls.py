"""URL decomposition for request targets and referers."""
from __future__ import annotations

import logging
import posixpath
from urllib.parse import SplitResult, parse_qsl, urljoin, urlsplit

from logpond.errors import UrlResolutionFailure
from .schemas import UrlParts


logger = logging.getLogger(__name__)

EMPTY_URL = UrlParts()


def _origin(parts: SplitResult) -> str:
    # Accessing .port validates it and raises ValueError when out of range.
    port = parts.port
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    default_port = {"http": 80, "https": 443}.get(parts.scheme)
    if port is not None and port != default_port:
        return f"{parts.scheme}://{host}:{port}"
    return f"{parts.scheme}://{host}"


def _extension(path: str) -> str | None:
    """Lower-cased text after the last '.' of the final path segment."""
    segment = posixpath.basename(path)
    if "." not in segment:
        return None
    extension = segment.rsplit(".", 1)[1].lower()
    return extension or None


def parse_query(query: str) -> dict[str, list[str]]:
    """Percent-decode a query string, keeping repeated keys in order."""
    parsed: dict[str, list[str]] = {}
    for key, value in parse_qsl(query, keep_blank_values=True):
        parsed.setdefault(key, []).append(value)
    return parsed


def resolve(base: str, url: str) -> SplitResult:
    """Resolve ``url`` against ``base`` and split it.

    Raises UrlResolutionFailure when the result is not an absolute http(s) URL.
    """
    try:
        parts = urlsplit(urljoin(base, url))
        _origin(parts)
    except ValueError as e:
        raise UrlResolutionFailure(f"Cannot resolve {url!r}: {e}") from e
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise UrlResolutionFailure(f"Cannot resolve {url!r} against {base!r}")
    return parts


def _parts(parts: SplitResult) -> UrlParts:
    path = parts.path or "/"
    query = parts.query or None
    return UrlParts(
        origin=_origin(parts),
        path=path,
        extension=_extension(path),
        query=query,
        parsed_query=parse_query(query) if query is not None else None,
    )


def decompose(base: str, url: str) -> UrlParts:
    """Split ``url`` into origin, path, extension and query.

    Relative URLs are resolved against ``base``. A URL that cannot be resolved
    yields an empty UrlParts; it never fails the line.
    """
    try:
        return _parts(resolve(base, url))
    except UrlResolutionFailure as e:
        logger.debug("%s", e)
        return EMPTY_URL


class UrlDecomposer:
    """Decomposes request targets and referers relative to one base origin."""

    def __init__(self, origin: str) -> None:
        try:
            base = urlsplit(origin)
            self.origin = _origin(base)
        except ValueError as e:
            raise UrlResolutionFailure(f"Invalid origin {origin!r}: {e}") from e
        if base.scheme not in ("http", "https") or not base.hostname:
            raise UrlResolutionFailure(f"Invalid origin {origin!r}")
        self.base = origin
        self.hostname = base.hostname

    def request(self, target: str) -> UrlParts:
        """Decompose a request target; it must stay on the base host."""
        # "//evil.com/x" would otherwise be read as a network-path reference.
        while target.startswith("//"):
            target = target[1:]
        try:
            parts = resolve(self.base, target)
        except UrlResolutionFailure as e:
            logger.debug("%s", e)
            return EMPTY_URL
        if parts.hostname != self.hostname:
            logger.debug("Request target %r has a different host", target)
            return EMPTY_URL
        return _parts(parts)

    def referer(self, referer: str | None) -> UrlParts:
        if not referer:
            return EMPTY_URL
        return decompose(self.base, referer)
