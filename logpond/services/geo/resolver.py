import logging
from pathlib import Path
from typing import Protocol

import maxminddb
from geoip2.database import Reader
from geoip2.errors import AddressNotFoundError
from IPy import IP

from logpond.errors import ResourceLoadFailure
from logpond.services.cache import FacetCache
from logpond.services.logparser.constants import UNROUTABLE_IP_TYPES
from logpond.services.logparser.schemas import UNKNOWN_GEO, GeoFacts
from .ranges import RangeTable, facts_from_record


logger = logging.getLogger(__name__)


class GeoSource(Protocol):
    """Anything that maps an address to GeoFacts, or None on a miss."""

    def lookup(self, ip: IP) -> GeoFacts | None: ...

    def close(self) -> None: ...


class RangeTableSource:
    """Range dataset loaded in memory from csv."""

    def __init__(self, table: RangeTable) -> None:
        self.table = table

    def lookup(self, ip: IP) -> GeoFacts | None:
        return self.table.lookup(ip.version(), ip.int())

    def close(self) -> None:
        pass


class IpinfoMmdbSource:
    """IPinfo Lite ``.mmdb`` read with maxminddb."""

    def __init__(self, path: Path) -> None:
        try:
            self.reader = maxminddb.open_database(str(path))
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
            raise ResourceLoadFailure(f"Cannot open IPinfo database {path}: {e}") from e

    def lookup(self, ip: IP) -> GeoFacts | None:
        record = self.reader.get(ip.strNormal())
        if not isinstance(record, dict):
            return None
        return facts_from_record(record)

    def close(self) -> None:
        self.reader.close()


class GeoLite2Source:
    """MaxMind GeoLite2 Country database with an optional ASN database."""

    def __init__(self, country_path: Path, asn_path: Path | None = None) -> None:
        try:
            self.country_reader = Reader(str(country_path))
            self.asn_reader = Reader(str(asn_path)) if asn_path else None
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
            raise ResourceLoadFailure(f"Cannot open GeoLite2 database: {e}") from e

    def lookup(self, ip: IP) -> GeoFacts | None:
        address = ip.strNormal()
        try:
            country = self.country_reader.country(address)
        except AddressNotFoundError:
            return None

        asn = as_name = None
        if self.asn_reader:
            try:
                response = self.asn_reader.asn(address)
                asn = response.autonomous_system_number
                as_name = response.autonomous_system_organization
            except AddressNotFoundError:
                pass

        return GeoFacts(
            country=country.country.name,
            continent=country.continent.name,
            asn=asn,
            as_name=as_name,
        )

    def close(self) -> None:
        self.country_reader.close()
        if self.asn_reader:
            self.asn_reader.close()


def open_source(path: Path | None, format: str = "auto", asn_path: Path | None = None) -> GeoSource | None:
    """Open the configured range dataset. None means every lookup is unknown."""
    if path is None:
        logger.warning("No GeoIP dataset configured, geo columns will be empty.")
        return None
    if not path.exists():
        raise ResourceLoadFailure(f"GeoIP dataset not found: {path}")

    if format == "auto":
        format = "csv" if path.suffix.lower() == ".csv" else "ipinfo"
    logger.debug("Opening GeoIP dataset %s as %s", path, format)

    if format == "csv":
        return RangeTableSource(RangeTable.from_csv(path))
    if format == "ipinfo":
        return IpinfoMmdbSource(path)
    if format == "geolite2":
        return GeoLite2Source(path, asn_path)
    raise ResourceLoadFailure(f"Unknown GeoIP dataset format: {format}")


class GeoResolver:
    """Resolves client addresses to GeoFacts, memoized per address string."""

    def __init__(self, source: GeoSource | None, cache: FacetCache[str, GeoFacts] | None = None) -> None:
        self.source = source
        self.cache: FacetCache[str, GeoFacts] = cache if cache is not None else FacetCache("geo")

    def get_ip_type(self, ip: str) -> str:
        """Get the IPy type of the given address, or an empty string if invalid."""
        try:
            return IP(ip).iptype()
        except ValueError:
            logger.debug("Invalid IP address %s.", ip)
            return ""

    def resolve(self, ip: str) -> GeoFacts:
        return self.cache.get_or_compute(ip, self._resolve)

    def _resolve(self, ip: str) -> GeoFacts:
        if self.source is None:
            return UNKNOWN_GEO
        ip_type = self.get_ip_type(ip)
        if not ip_type:
            return UNKNOWN_GEO
        if ip_type in UNROUTABLE_IP_TYPES:
            logger.debug("IP type %s (%s) is not routable.", ip_type, ip)
            return UNKNOWN_GEO
        return self.source.lookup(IP(ip)) or UNKNOWN_GEO

    def close(self) -> None:
        if self.source is not None:
            self.source.close()
