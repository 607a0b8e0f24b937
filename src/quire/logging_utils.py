from __future__ import annotations

import logging
from copy import copy, deepcopy
from typing import Any
from urllib.parse import unquote

from rich.console import Console
from rich.logging import RichHandler
from uvicorn.config import LOGGING_CONFIG
from uvicorn.logging import AccessFormatter as UvicornAccessFormatter

LOGGER_NAME = "quire"
_HANDLER_NAME = "quire-rich"


def _decode_path(value: str) -> str:
    try:
        return unquote(value, encoding="utf-8", errors="replace")
    except Exception:
        return value


class Utf8AccessFormatter(UvicornAccessFormatter):
    """Uvicorn access log formatter that prints decoded UTF-8 paths (book ids)."""

    def formatMessage(self, record):  # type: ignore[override]
        try:
            client_addr, method, full_path, http_version, status_code = record.args
        except (TypeError, ValueError):
            return super().formatMessage(record)
        decoded_path = _decode_path(full_path) if isinstance(full_path, str) else full_path
        new_record = copy(record)
        new_record.args = (client_addr, method, decoded_path, http_version, status_code)
        return super().formatMessage(new_record)


def build_uvicorn_log_config() -> dict[str, Any]:
    """Return a uvicorn logging config that uses Utf8AccessFormatter."""
    config = deepcopy(LOGGING_CONFIG)
    formatter = config.get("formatters", {}).get("access")
    if isinstance(formatter, dict):
        formatter["()"] = "quire.logging_utils.Utf8AccessFormatter"
    return config


def set_debug_logging(enabled: bool, console: Console | None = None) -> logging.Logger:
    """Route ``quire`` log records to a rich handler; DEBUG when enabled, else WARNING."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if enabled else logging.WARNING)
    if not any(getattr(handler, "name", None) == _HANDLER_NAME for handler in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            rich_tracebacks=True,
            show_time=enabled,
            show_path=False,
        )
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    return logger


__all__ = [
    "LOGGER_NAME",
    "Utf8AccessFormatter",
    "build_uvicorn_log_config",
    "set_debug_logging",
]
