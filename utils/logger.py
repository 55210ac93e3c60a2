"""
Structured logging configuration
"""
import sys
import logging
from datetime import datetime
import structlog
from pythonjsonlogger import jsonlogger

from config import settings


class _FlushingStreamHandler(logging.StreamHandler):
    """Flushes after every record so uvicorn shows log lines as they happen"""
    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


_LOGGING_CONFIGURED = False  # handlers are attached to the root logger once per process


def _file_formatter() -> logging.Formatter:
    if settings.LOG_FORMAT.lower() == "json":
        return jsonlogger.JsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s")
    return logging.Formatter("%(message)s")


def setup_logging() -> structlog.BoundLogger:
    """
    Configure stdlib handlers and the structlog processor chain

    Console output is always human-readable; the daily file under LOGS_DIR is
    JSON when LOG_FORMAT is "json". Values bound with ``action_context`` are
    merged into every event logged inside the block.
    """
    global _LOGGING_CONFIGURED

    settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    log_file = settings.LOGS_DIR / f"canvas_{datetime.now().strftime('%Y%m%d')}.log"

    root_logger = logging.getLogger()
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if not _LOGGING_CONFIGURED:
        stdout_handler = _FlushingStreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(stdout_handler)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(_file_formatter())
        root_logger.addHandler(file_handler)

        _LOGGING_CONFIGURED = True

    # Not cached: uvicorn --reload would keep the stale processor chain
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=False)
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    return structlog.get_logger("venture_canvas")


def action_context(action_name: str):
    """Context manager tagging every log event inside it with ``action=<name>``"""
    return structlog.contextvars.bound_contextvars(action=action_name)


# Global logger instance
logger = setup_logging()
