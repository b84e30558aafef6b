from datetime import datetime, timedelta, timezone


def now_utc() -> datetime:
    # naive UTC, matching the DateTime() columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def expiry_from(start: datetime, minutes: int) -> datetime:
    return start + timedelta(minutes=minutes)
