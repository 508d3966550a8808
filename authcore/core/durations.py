# authcore/core/durations.py
import re
from typing import Optional, Union

_DURATION_RE = re.compile(r"^(\d+)([smhd])$")

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def parse_duration(value: Union[str, int], default: Optional[int] = None) -> int:
    """
    Converte uma duração legível ("30m", "7d", "45s") em segundos.

    Inteiros são tratados como segundos. Se o valor não puder ser interpretado,
    retorna `default`; sem default, levanta ValueError.
    """
    if isinstance(value, bool):
        # bool é subclasse de int, mas "True" não é uma duração
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Duration must not be negative: {value}")
        return value

    match = _DURATION_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        if default is not None:
            return default
        raise ValueError(f"Invalid duration: {value!r} (expected e.g. '30m', '7d')")

    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]
