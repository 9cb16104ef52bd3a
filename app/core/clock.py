from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
