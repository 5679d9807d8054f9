import json
import logging
import os
import sys

DEFAULT_MCP_LOG_FILE = "/tmp/minimem-sync.log"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured debug output.

    Each record becomes one object with fields: ts, level, logger, msg.
    Exception info is added as "exc" when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(
    debug_format: str, with_name: bool = False
) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    fmt = (
        "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
        if with_name
        else "[%(asctime)s] [%(levelname)s] %(message)s"
    )
    return logging.Formatter(fmt, datefmt=_DATEFMT)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure logging for the given execution mode.

    Args:
        mode: "mcp" logs to a file only (stdout carries the protocol),
            "cli" logs to stderr.
        debug: Force DEBUG level regardless of LOG_LEVEL.
        log_file: Log file path. In CLI mode an extra file handler is added.
        debug_format: "text" (default) or "json".
        level: Level name used when LOG_LEVEL is unset (e.g. from YAML).

    Environment variables:
        LOG_LEVEL: DEBUG, INFO, WARNING, ERROR.
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Log file for MCP mode when log_file is not given.
    """
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", level or default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    if mode == "mcp":
        final_log_file = log_file or os.getenv(
            "LOG_FILE", DEFAULT_MCP_LOG_FILE
        )
        logging.basicConfig(
            level=log_level,
            format="[%(asctime)s] [%(levelname)s] %(message)s",
            datefmt=_DATEFMT,
            filename=final_log_file,
            filemode="a",
        )
        return

    handlers: list[logging.Handler] = []
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(_make_formatter(debug_format))
    handlers.append(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(
            _make_formatter(debug_format, with_name=True)
        )
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)
