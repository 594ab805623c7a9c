from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    MetaData,
    SmallInteger,
    String,
    Table,
    Text,
)

# Bump whenever the column set changes. 2 added parsed_query and referer_parsed_query.
SCHEMA_VERSION = 2

META_TABLE = "logpond_meta"


def meta_table(metadata: MetaData) -> Table:
    """Key/value table recording the schema version of the output database."""
    return Table(
        META_TABLE,
        metadata,
        Column("key", String(64), primary_key=True),
        Column("value", String(255), nullable=False),
    )


def access_log_table(metadata: MetaData, name: str = "log") -> Table:
    """Enriched access log entries.

    One row per accepted log line. Every column except the structural fields
    of the line is nullable: facets that could not be resolved are stored as NULL.
    """
    return Table(
        name,
        metadata,
        # Request metadata
        Column("ip", String(45), nullable=False),
        Column("identity", String(255)),
        Column("user", String(255)),
        # Naive UTC
        Column("timestamp", DateTime(), nullable=False),
        Column("method", String(10), nullable=False),
        # Request URL, NULL when the target could not be resolved on the origin
        Column("path", Text),
        Column("extension", String(32)),
        Column("query", Text),
        # JSON object of key -> list of values
        Column("parsed_query", Text),
        Column("http_version", String(10), nullable=False),
        # Response details
        Column("status_code", SmallInteger, nullable=False),
        Column("size", BigInteger),
        # Referer
        Column("referer", Text),
        Column("referer_origin", Text),
        Column("referer_path", Text),
        Column("referer_query", Text),
        Column("referer_parsed_query", Text),
        # User agent facets
        Column("user_agent", Text),
        Column("browser", String(100)),
        Column("browser_major", Integer),
        Column("browser_minor", Integer),
        Column("browser_patch", Integer),
        Column("browser_patch_minor", Integer),
        Column("os", String(100)),
        Column("os_major", Integer),
        Column("os_minor", Integer),
        Column("os_patch", Integer),
        Column("os_patch_minor", Integer),
        Column("device", String(100)),
        Column("brand", String(100)),
        Column("model", String(100)),
        # Geographic and network information
        Column("country", String(100)),
        Column("continent", String(100)),
        Column("asn", BigInteger),
        Column("as_name", String(255)),
        Column("as_domain", String(255)),
    )


COLUMNS = tuple(column.name for column in access_log_table(MetaData()).columns)
