"""logpond - turn HTTP access logs into an enriched DuckDB table."""

__version__ = "0.1.0"
