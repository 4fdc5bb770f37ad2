"""Category-tagged console logging.

Modules log through ``logging.getLogger(__name__)`` as usual and attach a
category plus a small data dict via ``extra=log_extra(...)``. The
``CategoryFormatter`` renders those records as::

    [12:04:31] [API] API call completed in 812ms - tokens=80 (in=50/out=30)

Records without a category fall back to their level name.
"""

import enum
import logging
import sys
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

_LOGGING_CONFIGURED = False

RESET = "\x1b[0m"


class LogCategory(str, enum.Enum):
    """Closed set of log categories."""

    SERVER = "server"
    CONNECTION = "connection"
    MESSAGE = "message"
    API = "api"
    USAGE = "usage"
    STATS = "stats"
    MODE = "mode"
    SETTINGS = "settings"
    HISTORY = "history"
    ERROR = "error"


CATEGORY_COLORS: dict[LogCategory, str] = {
    LogCategory.SERVER: "\x1b[36m",  # Cyan
    LogCategory.CONNECTION: "\x1b[32m",  # Green
    LogCategory.MESSAGE: "\x1b[33m",  # Yellow
    LogCategory.API: "\x1b[35m",  # Magenta
    LogCategory.USAGE: "\x1b[34m",  # Blue
    LogCategory.STATS: "\x1b[36m",
    LogCategory.MODE: "\x1b[33m",
    LogCategory.SETTINGS: "\x1b[33m",
    LogCategory.HISTORY: "\x1b[36m",
    LogCategory.ERROR: "\x1b[31m",  # Red
}


def _format_message(data: Mapping[str, Any]) -> str:
    return (
        f"lang={data.get('target_lang')} mode={data.get('response_mode')} "
        f"type={data.get('interaction_type')} len={data.get('message_length')}"
    )


def _format_api(data: Mapping[str, Any]) -> str:
    usage = data.get("usage")
    if not usage:
        return ""
    return (
        f"tokens={usage.get('total_tokens')} "
        f"(in={usage.get('prompt_tokens')}/out={usage.get('completion_tokens')})"
    )


def _format_stats(data: Mapping[str, Any]) -> str:
    return (
        f"total={data.get('total_tokens')} reqs={data.get('total_requests')} "
        f"avg={data.get('avg_tokens_per_request')}"
    )


def _format_usage(data: Mapping[str, Any]) -> str:
    return (
        f"tokens={data.get('total_tokens')} type={data.get('request_type')} "
        f"count={data.get('request_count')}"
    )


def _format_settings(data: Mapping[str, Any]) -> str:
    return f"{data.get('type')}: {data.get('from')} → {data.get('to')}"


def _format_default(data: Mapping[str, Any]) -> str:
    """Show up to three scalar fields, then an ellipsis."""
    keys = list(data)
    parts = [
        f"{key}={data[key]}"
        for key in keys[:3]
        if not isinstance(data[key], (dict, list, tuple, set))
    ]
    result = " ".join(parts)
    if len(keys) > 3:
        result += "..."
    return result


DATA_FORMATTERS: dict[LogCategory, Callable[[Mapping[str, Any]], str]] = {
    LogCategory.MESSAGE: _format_message,
    LogCategory.API: _format_api,
    LogCategory.STATS: _format_stats,
    LogCategory.USAGE: _format_usage,
    LogCategory.SETTINGS: _format_settings,
}


def format_data(category: LogCategory | None, data: Any) -> str:
    """Render the data attached to a record for the given category."""
    if not data:
        return ""
    if not isinstance(data, Mapping):
        return str(data)
    formatter = DATA_FORMATTERS.get(category, _format_default)
    return formatter(data)


def log_extra(category: LogCategory, **data: Any) -> dict[str, Any]:
    """Build the ``extra`` mapping for a categorised log call."""
    return {"category": category, "data": data}


class CategoryFormatter(logging.Formatter):
    """Formats records as ``[HH:MM:SS] [CATEGORY] message - data``."""

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        category = getattr(record, "category", None)
        if category is None and record.levelno >= logging.ERROR:
            category = LogCategory.ERROR
        label = category.value.upper() if category else record.levelname

        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        prefix = f"[{timestamp}] [{label}]"
        if self.color and category is not None:
            prefix = f"{CATEGORY_COLORS[category]}{prefix}{RESET}"

        line = f"{prefix} {record.getMessage()}"
        compact = format_data(category, getattr(record, "data", None))
        if compact:
            line = f"{line} - {compact}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: str = "INFO", color: bool = True) -> None:
    """Configure the root logger once per process."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CategoryFormatter(color=color and sys.stdout.isatty()))

    root = logging.getLogger()
    root.setLevel(level.upper())
    root.addHandler(handler)
    _LOGGING_CONFIGURED = True
