from datetime import datetime, timezone


def current_time() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)
