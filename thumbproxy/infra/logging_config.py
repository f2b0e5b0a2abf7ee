# thumbproxy/infra/logging_config.py
"""
Logging setup for the proxy.

Production (``app_env=prod``) emits one JSON object per line; other
environments get a coloured single-line console format. Request-scoped
fields (request id, image identifier, outcome, duration) travel as
``extra`` attributes on the record and are attached by ``LogContext``.
"""
import json
import logging
import sys
from datetime import datetime, timezone


CONTEXT_FIELDS = ("request_id", "identifier", "outcome", "duration_ms")

# Third-party loggers and the level they are capped at
NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "aiohttp.access": logging.WARNING,
    "PIL": logging.WARNING,
}


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


def _context_of(record: logging.LogRecord) -> dict:
    return {name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)}


class JSONFormatter(logging.Formatter):
    """One JSON document per record, for log shippers"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        payload.update(_context_of(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable format for development"""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        context = _context_of(record)

        tags = []
        if "request_id" in context:
            tags.append(f"req={str(context['request_id'])[:8]}")
        if "identifier" in context:
            tags.append(f"id={context['identifier']}")
        if "outcome" in context:
            tags.append(f"outcome={context['outcome']}")
        suffix = f" [{' '.join(tags)}]" if tags else ""

        line = (
            f"{color}{_record_time(record):%H:%M:%S} {record.levelname:<8}{self.RESET} "
            f"{record.name}{suffix} {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", use_json: bool = False) -> None:
    """
    Configure root logging once at process start.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Emit JSON lines instead of the console format
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    for name, cap in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(cap)

    logging.getLogger(__name__).info(f"Logging configured: level={level}, json={use_json}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Logger wrapper that stamps request-scoped fields on every record"""

    def __init__(
            self,
            logger: logging.Logger,
            request_id: str | None = None,
            identifier: str | None = None,
    ):
        self.logger = logger
        self.context = {}
        if request_id is not None:
            self.context["request_id"] = request_id
        if identifier is not None:
            self.context["identifier"] = identifier

    def _log(self, level: int, msg: str, *args, **kwargs):
        extra = dict(kwargs.pop("extra", None) or {})
        extra.update(self.context)
        self.logger.log(level, msg, *args, extra=extra, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)
