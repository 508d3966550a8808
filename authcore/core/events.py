# authcore/core/events.py
from typing import Any, Protocol

from loguru import logger


class EventSink(Protocol):
    """Interface de observabilidade injetada em cada componente."""

    def emit(self, event: str, *, level: str = "INFO", **fields: Any) -> None:
        ...


class LoguruEventSink:
    """Emite eventos estruturados via loguru (campos ficam em record["extra"])."""

    def __init__(self, component: str | None = None):
        self._logger = logger.bind(component=component) if component else logger

    def emit(self, event: str, *, level: str = "INFO", **fields: Any) -> None:
        details = " ".join(f"{k}={v}" for k, v in fields.items())
        self._logger.bind(event=event, **fields).log(level.upper(), f"{event} {details}".rstrip())


def short_hash(token_hash: str) -> str:
    """Nunca logar o hash inteiro."""
    return f"{token_hash[:8]}..."
