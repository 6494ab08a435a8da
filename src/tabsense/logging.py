"""Two-tier structured logging for tabsense.

Provides:
- Console: Minimal output (INFO+) for human readability
- Debug file: JSON Lines format with full context for debugging
"""

import json
import logging
import os
import platform
import sys
from contextvars import ContextVar
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .state import SessionState

# Session state of the panel whose task is logging; each task context
# carries its own value
_current_state: ContextVar[SessionState] = ContextVar(
    "tabsense_session_state", default=SessionState.UNKNOWN
)
_current_attempt: ContextVar[Optional[int]] = ContextVar("tabsense_download_attempt", default=None)


def set_current_state(state: SessionState) -> None:
    """Update the session state used for log context injection."""
    _current_state.set(state)


def get_current_state() -> SessionState:
    """Get the session state for log context."""
    return _current_state.get()


def set_current_attempt(attempt_number: Optional[int]) -> None:
    """Tag subsequent records with a download attempt number, or clear it."""
    _current_attempt.set(attempt_number)


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON Lines for structured debugging.

    Output format:
    {"ts":"2026-10-19T10:15:32.123","level":"DEBUG","component":"manager",
     "state":"DOWNLOADING","msg":"progress=0.42","attempt":2,"ctx":{...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        # "tabsense.lifecycle.manager" -> "manager"
        component = record.name.split(".")[-1] if "." in record.name else record.name

        log_entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "component": component,
            "state": get_current_state().name,
            "msg": record.getMessage(),
        }

        attempt = _current_attempt.get()
        if attempt is not None:
            log_entry["attempt"] = attempt

        if record.exc_info:
            log_entry["exc"] = self.formatException(record.exc_info)

        # Extra context passed via extra={"ctx": {...}}
        if hasattr(record, "ctx"):
            log_entry["ctx"] = record.ctx

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Clean, minimal console formatter for human readability."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    LEVEL_SHORT = {
        "DEBUG": "DBG",
        "INFO": "INF",
        "WARNING": "WRN",
        "ERROR": "ERR",
        "CRITICAL": "CRT",
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level_short = self.LEVEL_SHORT.get(record.levelname, record.levelname[:3])
        component = record.name.split(".")[-1] if "." in record.name else record.name
        time_str = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        msg = f"{time_str} [{level_short}] {component}: {record.getMessage()}"

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            msg = f"{color}{msg}{self.RESET}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


def get_debug_log_path() -> Path:
    """Get the path to the debug log file (XDG compliant)."""
    data_home = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
    return Path(data_home) / "tabsense" / "logs" / "debug.log"


def rotate_debug_log(log_path: Path) -> None:
    """Rotate existing debug log to .1 on startup."""
    if log_path.exists():
        rotated = log_path.with_suffix(".log.1")
        if rotated.exists():
            rotated.unlink()
        log_path.rename(rotated)


def log_session_header(config: Any, logger: logging.Logger) -> None:
    """Log startup info so each debug log is self-contained."""
    header = {
        "session_start": datetime.now().isoformat(),
        "python_version": platform.python_version(),
        "platform": platform.system(),
        "platform_version": platform.release(),
        "config": asdict(config) if hasattr(config, "__dataclass_fields__") else str(config),
    }
    logger.info("=== tabsense started ===", extra={"ctx": header})


def setup_logging(
    config: Any,
    console_level: str = "INFO",
    debug_to_file: bool = True,
    use_colors: bool = True,
) -> None:
    """Configure two-tier logging.

    Args:
        config: Config object for the session header.
        console_level: Minimum level for console output.
        debug_to_file: Whether to write JSON debug logs to file.
        use_colors: Whether to use ANSI colors in console output.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)  # Filter at handler level
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, console_level.upper()))
    console.setFormatter(ConsoleFormatter(use_colors=use_colors))
    root.addHandler(console)

    if debug_to_file:
        log_path = get_debug_log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        rotate_debug_log(log_path)

        file_handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for lib in ["httpx", "httpcore", "asyncio"]:
        logging.getLogger(lib).setLevel(logging.WARNING)

    log_session_header(config, logging.getLogger("tabsense"))


def get_debug_log_contents(lines: int = 200) -> str:
    """Read the last N lines of the debug log.

    Args:
        lines: Number of lines to return.

    Returns:
        The last N lines of the debug log.
    """
    log_path = get_debug_log_path()
    if not log_path.exists():
        return "No debug log found."

    with open(log_path, "r", encoding="utf-8") as f:
        all_lines = f.readlines()

    return "".join(all_lines[-lines:])


def get_filtered_logs(
    component: Optional[str] = None,
    level: Optional[str] = None,
    lines: int = 100,
    attempt: Optional[int] = None,
) -> str:
    """Get debug log lines filtered by component, level and/or download attempt.

    Args:
        component: Filter to a specific component (e.g., "manager", "pipeline").
        level: Filter to a specific level (e.g., "ERROR", "WARNING").
        lines: Maximum lines to return.
        attempt: Filter to records logged during one download attempt.
    """
    log_path = get_debug_log_path()
    if not log_path.exists():
        return "No debug log found."

    results = []
    with open(log_path, "r", encoding="utf-8") as f:
        for line in f:
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if component and entry.get("component") != component:
                continue
            if level and entry.get("level") != level:
                continue
            if attempt is not None and entry.get("attempt") != attempt:
                continue
            results.append(line)

    return "".join(results[-lines:])
