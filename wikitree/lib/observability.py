"""Observability facade wrapping Pydantic Logfire.

Provides tracing spans around hook dispatch and SQL query visibility.
Gracefully no-ops when logfire is not installed or not enabled in
configuration.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from wikitree.config import Settings

_logfire = None
_configured = False


def is_available() -> bool:
    return _logfire is not None and _configured


def configure(settings: Settings) -> bool:
    """Initialize logfire from LogfireConfig settings.

    No-ops if logfire is not installed or not enabled.

    Returns:
        True when logfire is configured after the call
    """
    global _logfire, _configured

    if not settings.logfire.enabled:
        return False
    if _configured:
        return True

    try:
        import logfire as lf
    except ImportError:
        return False

    kwargs: dict[str, Any] = {
        "service_name": settings.logfire.service_name,
        "send_to_logfire": "if-token-present",
    }
    if settings.logfire.environment:
        kwargs["environment"] = settings.logfire.environment
    if settings.logfire.sample_rate != 1.0:
        kwargs["trace_sample_rate"] = settings.logfire.sample_rate
    if settings.logfire.console:
        kwargs["console"] = lf.ConsoleOptions()

    lf.configure(**kwargs)
    _logfire = lf
    _configured = True
    return True


def instrument_sqlalchemy(engine) -> None:
    """Instrument a SQLAlchemy engine (async engines via their sync_engine)."""
    if is_available():
        _logfire.instrument_sqlalchemy(engine=getattr(engine, "sync_engine", engine))


@contextmanager
def span(name: str, **attrs: Any):
    """Context manager that yields a logfire span, or None if unavailable."""
    if is_available():
        with _logfire.span(name, **attrs) as s:
            yield s
    else:
        yield None


def warning(msg: str, **kwargs: Any) -> None:
    if is_available():
        _logfire.warn(msg, **kwargs)
