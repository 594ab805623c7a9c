"""Sorted IP range table searched with binary search."""
from __future__ import annotations

import csv
import logging
from bisect import bisect_right
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from IPy import IP

from logpond.errors import ResourceLoadFailure
from logpond.services.logparser.schemas import GeoFacts


logger = logging.getLogger(__name__)


def parse_asn(value: object) -> int | None:
    """Normalise 'AS13335', '13335' or 13335 to 13335."""
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip().upper().removeprefix("AS")
    return int(text) if text.isdigit() else None


def facts_from_record(record: dict) -> GeoFacts:
    """Build GeoFacts from an IPinfo Lite style record (csv row or mmdb entry)."""
    def text(key: str) -> str | None:
        value = record.get(key)
        return str(value) if value not in (None, "") else None

    return GeoFacts(
        country=text("country"),
        continent=text("continent"),
        asn=parse_asn(record.get("asn")),
        as_name=text("as_name"),
        as_domain=text("as_domain"),
    )


@dataclass
class _VersionTable:
    starts: list[int] = field(default_factory=list)
    ends: list[int] = field(default_factory=list)
    facts: list[GeoFacts] = field(default_factory=list)


class RangeTable:
    """Non-overlapping ``[start, end] -> GeoFacts`` ranges, one table per IP version.

    Lookup is a single bisect over the range starts followed by a bound check
    on the candidate's end.
    """

    def __init__(self, ranges: Iterable[tuple[int, int, int, GeoFacts]] = ()) -> None:
        """Build from ``(version, start, end, facts)`` tuples in any order.

        Overlapping ranges within one IP version are rejected.
        """
        by_version: dict[int, list[tuple[int, int, GeoFacts]]] = {4: [], 6: []}
        for version, start, end, facts in ranges:
            if end < start:
                raise ResourceLoadFailure(f"Range end {end} is below its start {start}")
            by_version[version].append((start, end, facts))

        self._tables: dict[int, _VersionTable] = {}
        for version, entries in by_version.items():
            entries.sort(key=lambda entry: entry[0])
            table = _VersionTable()
            for start, end, facts in entries:
                if table.ends and start <= table.ends[-1]:
                    raise ResourceLoadFailure(
                        f"IPv{version} range starting at {start} overlaps the range "
                        f"{table.starts[-1]}-{table.ends[-1]}"
                    )
                table.starts.append(start)
                table.ends.append(end)
                table.facts.append(facts)
            self._tables[version] = table

    def __len__(self) -> int:
        return sum(len(table.starts) for table in self._tables.values())

    def lookup(self, version: int, address: int) -> GeoFacts | None:
        table = self._tables.get(version)
        if table is None:
            return None
        index = bisect_right(table.starts, address) - 1
        if index >= 0 and address <= table.ends[index]:
            return table.facts[index]
        return None

    @classmethod
    def from_csv(cls, path: Path) -> "RangeTable":
        """Load an IPinfo Lite style CSV.

        The header needs either a ``network`` (CIDR) column or ``start_ip`` and
        ``end_ip`` columns, plus any of country, continent, asn, as_name and
        as_domain.
        """
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                reader = csv.DictReader(f)
                header = set(reader.fieldnames or ())
                if "network" not in header and not {"start_ip", "end_ip"} <= header:
                    raise ResourceLoadFailure(
                        f"{path}: needs a 'network' column or 'start_ip'/'end_ip' columns"
                    )
                table = cls(cls._read_rows(reader, path))
        except OSError as e:
            raise ResourceLoadFailure(f"Cannot read IP range dataset {path}: {e}") from e
        logger.info("Loaded %d IP ranges from %s", len(table), path)
        return table

    @staticmethod
    def _read_rows(reader: csv.DictReader, path: Path) -> Iterable[tuple[int, int, int, GeoFacts]]:
        for row in reader:
            try:
                if row.get("network"):
                    network = IP(row["network"], make_net=True)
                    start = network.int()
                    end = start + network.len() - 1
                    version = network.version()
                else:
                    first, last = IP(row["start_ip"]), IP(row["end_ip"])
                    if first.version() != last.version():
                        raise ValueError("start_ip and end_ip differ in IP version")
                    start, end = first.int(), last.int()
                    version = first.version()
            except (ValueError, TypeError) as e:
                raise ResourceLoadFailure(
                    f"{path}:{reader.line_num}: invalid range: {e}"
                ) from e
            yield version, start, end, facts_from_record(row)
