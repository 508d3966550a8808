# authcore/core/clock.py
from datetime import datetime, timezone


def utc_now() -> datetime:
    """UTC naive: é assim que as datas são gravadas no banco e no cache."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def seconds_until(moment: datetime) -> int:
    """Segundos inteiros até `moment` (UTC naive). Negativo se já passou."""
    return int((moment - utc_now()).total_seconds())
