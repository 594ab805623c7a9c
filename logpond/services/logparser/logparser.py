import logging
import re
from datetime import datetime

from IPy import IP

from logpond.errors import MalformedLine
from .constants import (
    LAST_TOKEN,
    QUOTED,
    SEPARATOR,
    TIMESTAMP,
    TIMESTAMP_FORMAT,
    TOKEN,
    ipv4,
    ipv6,
)
from .schemas import HttpMethod, HttpVersion, ParsedLine


logger = logging.getLogger(__name__)


def _convert_to_none(value: str | None) -> str | None:
    """Convert '-' or empty values to None for optional fields."""
    if value is None or value in ("", "-"):
        return None
    return value


class LogParser:
    """Parses one combined/common log line into a ParsedLine.

    Layout: ``ip identity user [timestamp] "method target protocol" status size
    "referer" "user-agent"``. The referer and user-agent pair is optional
    (common log format) and anything after the user-agent is ignored.

    Fields are scanned left to right and validated as they are read, so a
    MalformedLine always names the first field that is wrong.
    """

    def _take(self, pattern: re.Pattern[str], line: str, pos: int, field: str) -> tuple[str, int]:
        matched = pattern.match(line, pos)
        if not matched:
            raise MalformedLine(field, f"{field.replace('_', ' ').capitalize()} not found")
        return matched.group(1), matched.end()

    def _skip_separator(self, line: str, pos: int, field: str) -> int:
        matched = SEPARATOR.match(line, pos)
        if not matched:
            raise MalformedLine(field, f"{field.replace('_', ' ').capitalize()} not found")
        return matched.end()

    def validate_ip(self, token: str) -> str:
        """Return the address if it is a literal IPv4/IPv6 address."""
        if not (ipv4().match(token) or ipv6().match(token)):
            raise MalformedLine("ip", f"Invalid IP {token!r}")
        try:
            IP(token)
        except ValueError:
            raise MalformedLine("ip", f"Invalid IP {token!r}") from None
        return token

    def parse_timestamp(self, value: str) -> datetime:
        try:
            return datetime.strptime(value, TIMESTAMP_FORMAT)
        except ValueError:
            raise MalformedLine("timestamp", f"Invalid datetime {value!r}") from None

    def parse_request(self, request: str) -> tuple[HttpMethod, str, HttpVersion]:
        """Split ``"GET /path?q HTTP/1.1"`` into its three parts."""
        if not request:
            raise MalformedLine("request", "Empty request")
        method, _, rest = request.partition(" ")
        if not rest:
            raise MalformedLine("path", "Path not found")
        target, _, protocol = rest.rpartition(" ")
        if not target or not protocol.startswith("HTTP/"):
            raise MalformedLine("protocol", "HTTP version not found")
        return HttpMethod.from_token(method), target, HttpVersion.from_token(protocol)

    def parse_status(self, token: str) -> int:
        if not (token.isascii() and token.isdigit()):
            raise MalformedLine("status_code", f"Invalid status code {token!r}")
        return int(token)

    def parse_size(self, token: str) -> int | None:
        if token == "-":
            return None
        if not (token.isascii() and token.isdigit()):
            raise MalformedLine("size", f"Invalid size {token!r}")
        return int(token)

    def parse_line(self, line: str) -> ParsedLine:
        """Parse a log line or raise MalformedLine. No partial result is returned."""
        line = line.rstrip("\r\n")

        ip, pos = self._take(TOKEN, line, 0, "ip")
        ip = self.validate_ip(ip)

        identity, pos = self._take(TOKEN, line, pos, "identity")
        user, pos = self._take(TOKEN, line, pos, "user")

        timestamp, pos = self._take(TIMESTAMP, line, pos, "timestamp")
        parsed_timestamp = self.parse_timestamp(timestamp)

        request, pos = self._take(QUOTED, line, pos, "request")
        method, target, http_version = self.parse_request(request)

        pos = self._skip_separator(line, pos, "status_code")
        status, pos = self._take(LAST_TOKEN, line, pos, "status_code")
        status_code = self.parse_status(status)

        pos = self._skip_separator(line, pos, "size")
        size_token, pos = self._take(LAST_TOKEN, line, pos, "size")
        size = self.parse_size(size_token)

        referer: str | None = None
        user_agent: str | None = None
        if line[pos:].strip():
            pos = self._skip_separator(line, pos, "referer")
            referer, pos = self._take(QUOTED, line, pos, "referer")
            pos = self._skip_separator(line, pos, "user_agent")
            user_agent, pos = self._take(QUOTED, line, pos, "user_agent")

        return ParsedLine(
            ip=ip,
            identity=_convert_to_none(identity),
            user=_convert_to_none(user),
            timestamp=parsed_timestamp,
            method=method,
            request_target=target,
            http_version=http_version,
            status_code=status_code,
            size=size,
            referer=_convert_to_none(referer),
            user_agent=_convert_to_none(user_agent),
        )


def format_line(parsed: ParsedLine) -> str:
    """Serialize a ParsedLine back into the combined log layout."""
    version = parsed.http_version.value if parsed.http_version is not HttpVersion.OTHER else "HTTP/0.9"
    method = parsed.method.value
    return (
        f"{parsed.ip} {parsed.identity or '-'} {parsed.user or '-'} "
        f"[{parsed.timestamp.strftime(TIMESTAMP_FORMAT)}] "
        f'"{method} {parsed.request_target} {version}" '
        f"{parsed.status_code} {'-' if parsed.size is None else parsed.size} "
        f'"{parsed.referer or "-"}" "{parsed.user_agent or "-"}"'
    )
