"""Console logging for the service.

Loggers:
  country_api          general app events, error handlers, fetch failures
  country_api.refresh  refresh passes: fetch counts, skipped rows, pass summary
  country_api.request  one line per HTTP request
  country_api.db       schema init and slow queries
"""
import importlib.util
import logging
import time
from logging.config import dictConfig

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import Engine
from starlette.middleware.base import BaseHTTPMiddleware

from country_api.config import settings

COLORLOG_AVAILABLE = importlib.util.find_spec("colorlog") is not None

LOG_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] %(message)s"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def _app_loggers(level: str) -> dict:
    # Refresh passes and request lines stay visible even when LOG_LEVEL is raised.
    levels = {
        "country_api": level,
        "country_api.refresh": "INFO",
        "country_api.request": "INFO",
        "country_api.db": "INFO",
    }
    return {name: {"level": lvl, "handlers": ["console"], "propagate": False} for name, lvl in levels.items()}


def build_logging_config(level: str | None = None, console_level: str | None = None) -> dict:
    level = (level or settings.LOG_LEVEL).upper()
    formatter = {"format": LOG_FORMAT}
    if COLORLOG_AVAILABLE:
        formatter = {
            "()": "colorlog.ColoredFormatter",
            "format": "%(log_color)s" + LOG_FORMAT,
            "log_colors": LOG_COLORS,
        }
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"console": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "level": (console_level or settings.CONSOLE_LOG_LEVEL).upper(),
            },
        },
        "loggers": {
            # Uvicorn's access log duplicates country_api.request
            "uvicorn.access": {"level": "WARNING"},
            "uvicorn.error": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            **_app_loggers(level),
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def init_logging() -> None:
    dictConfig(build_logging_config())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs ``METHOD path → status (ms)``; server errors at warning level."""

    async def dispatch(self, request: Request, call_next):
        logger = logging.getLogger("country_api.request")
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - start) * 1000
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, "%s %s → %s (%.2f ms)", request.method, request.url.path, response.status_code, elapsed)
        return response


def setup_query_logging(engine: Engine) -> None:
    """Warn about statements slower than SLOW_QUERY_THRESHOLD_MS on ``engine``."""
    logger = logging.getLogger("country_api.db")

    @event.listens_for(engine, "before_cursor_execute")
    def _start_timer(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def _report_slow(conn, cursor, statement, parameters, context, executemany):
        elapsed = (time.perf_counter() - conn.info["query_start_time"].pop()) * 1000
        if elapsed > settings.SLOW_QUERY_THRESHOLD_MS:
            logger.warning("Slow query (%.2f ms): %s", elapsed, statement)
