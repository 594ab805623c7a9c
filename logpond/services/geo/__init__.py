"""Geo and ASN resolution over IP range datasets."""
from .ranges import RangeTable, parse_asn
from .resolver import GeoResolver, GeoSource, RangeTableSource, open_source

__all__ = ["RangeTable", "parse_asn", "GeoResolver", "GeoSource", "RangeTableSource", "open_source"]
