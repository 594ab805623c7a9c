"""Patterns and lookup tables for the combined log layout."""
import re
from functools import lru_cache

TIMESTAMP_FORMAT = "%d/%b/%Y:%H:%M:%S %z"

# IPy iptype() values that never appear in a public range dataset.
UNROUTABLE_IP_TYPES = frozenset({
    "PRIVATE",
    "LOOPBACK",
    "RESERVED",
    "LINKLOCAL",
    "MULTICAST",
    "UNSPECIFIED",
    "CARRIER_GRADE_NAT",
    "SITELOCAL",
    "ULA",
    "IPV4COMP",
})


@lru_cache
def ipv4() -> re.Pattern[str]:
    return re.compile(r"^(?:\d{1,3}\.){3}\d{1,3}$")


@lru_cache
def ipv6() -> re.Pattern[str]:
    return re.compile(r"^[0-9A-Fa-f.]*:[0-9A-Fa-f:.]*$")


# Field scanners, applied in order with Pattern.match(line, pos).
TOKEN = re.compile(r"(\S+) ")
TIMESTAMP = re.compile(r"\[([^\]]*)\] ")
QUOTED = re.compile(r'"((?:[^"\\]|\\.)*)"')
SEPARATOR = re.compile(r" +")
LAST_TOKEN = re.compile(r"(\S+)(?= |$)")
