from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC now, the timestamp form stored by every backend."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_iso(value: datetime) -> str:
    """Fixed-width ISO-8601 so timestamp cells sort lexically."""
    return value.isoformat(timespec="microseconds")
