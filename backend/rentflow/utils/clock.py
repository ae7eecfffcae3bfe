from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600
