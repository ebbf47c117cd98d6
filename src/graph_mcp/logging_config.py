"""
Logging configuration for the Graph MCP server.

Structured JSON logs for machines, a readable log for humans, and a fresh set
of files per run with the previous run archived alongside.
"""

import json
import logging
import logging.handlers
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Extra attributes copied into the JSON entry when a record carries them
STRUCTURED_EXTRAS = (
    "tenant_id",
    "auth_method",
    "validation_mode",
    "operation_kind",
    "duration_ms",
)

ALL_LOGS_FILE = "graph_mcp_all.jsonl"
ERROR_LOGS_FILE = "graph_mcp_errors.jsonl"
READABLE_LOGS_FILE = "graph_mcp.log"


class StructuredFormatter(logging.Formatter):
    """JSON structured formatter for machine-readable logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key in STRUCTURED_EXTRAS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Readable single-line formatter, colored when stderr is a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def __init__(self, use_color: bool = False) -> None:
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        if self.use_color:
            color = self.COLORS.get(level, self.COLORS["RESET"])
            level = f"{color}{level}{self.COLORS['RESET']}"

        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        location = f"{record.module}.{record.funcName}:{record.lineno}"
        formatted = f"{timestamp} [{level}] {record.name}.{location} - {record.getMessage()}"

        method = getattr(record, "auth_method", None)
        mode = getattr(record, "validation_mode", None)
        if method or mode:
            tags = ", ".join(
                f"{name}={value}"
                for name, value in (("auth", method), ("mode", mode))
                if value
            )
            formatted += f" [{tags}]"

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def archive_existing_logs(log_dir: Path) -> dict[str, Any]:
    """
    Move the previous run's log files into ``archives/<UTC timestamp>/``.

    Returns:
        Dictionary with keys 'archived' (bool), 'archive_dir' (path relative
        to log_dir, or None) and 'file_count'.
    """
    result: dict[str, Any] = {"archived": False, "archive_dir": None, "file_count": 0}

    if not log_dir.exists():
        return result

    log_files = list(log_dir.glob("*.log*")) + list(log_dir.glob("*.jsonl*"))
    if not log_files:
        return result

    archive_timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    archive_dir = log_dir / "archives" / archive_timestamp
    archive_dir.mkdir(parents=True, exist_ok=True)

    archived_count = 0
    for log_file in log_files:
        try:
            shutil.move(str(log_file), str(archive_dir / log_file.name))
            archived_count += 1
        except OSError as e:
            # logging is not configured yet
            print(f"Warning: Failed to archive {log_file.name}: {e}", file=sys.stderr)

    result["archived"] = archived_count > 0
    result["archive_dir"] = (
        str(archive_dir.relative_to(log_dir)) if archived_count > 0 else None
    )
    result["file_count"] = archived_count
    return result


def _rotating_handler(
    path: Path,
    level: int,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_dir: str = "logs",
    log_level: str = "INFO",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 10,
) -> None:
    """
    Configure root logging for the server.

    Args:
        log_dir: Directory to store log files
        log_level: Minimum level for the readable file and console
        max_bytes: Maximum size of each log file before rotation
        backup_count: Number of rotated files to keep
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    archive_info = archive_existing_logs(log_path)

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    root_logger.addHandler(
        _rotating_handler(
            log_path / ALL_LOGS_FILE,
            logging.DEBUG,
            StructuredFormatter(),
            max_bytes,
            backup_count,
        )
    )
    root_logger.addHandler(
        _rotating_handler(
            log_path / ERROR_LOGS_FILE,
            logging.ERROR,
            StructuredFormatter(),
            max_bytes,
            backup_count,
        )
    )
    root_logger.addHandler(
        _rotating_handler(
            log_path / READABLE_LOGS_FILE,
            numeric_level,
            HumanReadableFormatter(),
            max_bytes,
            backup_count,
        )
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(HumanReadableFormatter(use_color=sys.stderr.isatty()))
    root_logger.addHandler(console_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger = logging.getLogger("graph_mcp.logging")
    if archive_info["archived"]:
        logger.info(
            f"Previous logs archived: {archive_info['file_count']} file(s) → "
            f"{archive_info['archive_dir']}"
        )
    else:
        logger.info("Fresh start: No previous logs found")

    logger.info(f"Logging initialized - Level: {log_level}")
    logger.info(f"Log directory: {log_path.absolute()}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
