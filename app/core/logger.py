import logging
import os
import sys
import uuid
from contextvars import ContextVar
from typing import TYPE_CHECKING, Optional

from loguru import logger

from app.core.config import Environment, settings

if TYPE_CHECKING:
    from loguru import Record

# ============================================
# REQUEST CORRELATION
# ============================================

# Set by LoggingMiddleware for the duration of a request
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


# ============================================
# SINK FORMATS
# ============================================

LOG_FILE = settings.log_dir / "app.log"

LEVEL_NAMES = {
    logging.CRITICAL: "CRITICAL",
    logging.ERROR: "ERROR",
    logging.WARNING: "WARNING",
    logging.INFO: "INFO",
    logging.DEBUG: "DEBUG",
    logging.NOTSET: "NOTSET",
}

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>PID:{extra[process_id]}</magenta> | "
    "<yellow>ReqID:{extra[request_id]}</yellow> | "
    "<cyan>{name}:{function}:{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss!UTC} | "
    "{level: <8} | "
    "PID:{extra[process_id]} | "
    "ReqID:{extra[request_id]} | "
    "{name}:{function}:{line} | "
    "{message}"
)


def correlation_filter(record: "Record") -> bool:
    """
    Stamp every record with the current request id and the worker PID.

    Records emitted outside a request get a fresh short id.
    """
    record["extra"]["request_id"] = request_id_var.get() or str(uuid.uuid4())[:8]
    record["extra"]["process_id"] = os.getpid()

    return True


def redact_email(email: str) -> str:
    """Shorten the local part of an email so logs do not carry full addresses."""
    if "@" not in email:
        return "redacted"

    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class InterceptHandler(logging.Handler):
    """Forward stdlib ``logging`` records (uvicorn, sqlalchemy, httpx) to loguru."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip the logging module frames so loguru reports the real caller
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


# ============================================
# LIFECYCLE
# ============================================


def setup_logger():
    """
    Replace loguru's default sink with a console sink and a rotating file sink.

    Both sinks are enqueued so gunicorn workers can share the log file. Call
    once per process from the application lifespan.
    """
    logger.remove()

    level = LEVEL_NAMES[settings.log_level]

    logger.add(
        sys.stdout,
        format=CONSOLE_FORMAT,
        level=logging.DEBUG if settings.current_environment == Environment.DEV else level,
        colorize=True,
        enqueue=True,
        filter=correlation_filter,
    )

    settings.log_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        LOG_FILE,
        format=FILE_FORMAT,
        level=level,
        rotation="10 MB",
        retention="3 months",
        compression="gz",
        enqueue=True,
        serialize=False,
        filter=correlation_filter,
        backtrace=True,
        # Variable values in tracebacks could leak credentials outside local runs
        diagnose=settings.current_environment == Environment.LOCAL,
    )

    logger.info(
        f"Logger initialized | Environment: {settings.current_environment.value} | Level: {level}"
    )


def configure_uvicorn_logging():
    """Route the root logger and every ``uvicorn*`` logger through InterceptHandler."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for name in list(logging.root.manager.loggerDict):
        if name.startswith("uvicorn"):
            uvicorn_logger = logging.getLogger(name)
            uvicorn_logger.handlers = [InterceptHandler()]
            uvicorn_logger.propagate = False

    logger.debug("Uvicorn logging configured to use Loguru")


def shutdown_logger():
    """Flush the enqueued records before the process exits."""
    logger.info("Shutting down logger...")
    logger.complete()
