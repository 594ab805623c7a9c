from .sink import DuckDBSink, ErrorSink, row_values

__all__ = ["DuckDBSink", "ErrorSink", "row_values"]
