from .logs.models import SCHEMA_VERSION, access_log_table, meta_table

__all__ = [
    "SCHEMA_VERSION",
    "access_log_table",
    "meta_table",
]
