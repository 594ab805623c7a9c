from datetime import datetime, timezone


def to_utc(value: datetime) -> datetime:
    """Naive UTC datetime, the representation stored in the output table."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
