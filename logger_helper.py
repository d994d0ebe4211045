import logging
import time
from logging.handlers import RotatingFileHandler
from typing import Optional

from fastapi import Request

from config import LOG_FILE, LOG_LEVEL

LOG_MAX_SIZE = 20 * 1024 * 1024  # 20 MB
LOG_BACKUP_COUNT = 5             # Keep last 5 log files
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logger(log_file: Optional[str] = LOG_FILE, level: str = LOG_LEVEL) -> logging.Logger:
    """
    Configure the "gatepass" logger tree.

    Every module logs under "gatepass.<module>", so one set of handlers here
    covers the engine, the store and the request log. File output rotates
    at 20 MB and is skipped when `log_file` is empty.
    """
    logger = logging.getLogger("gatepass")
    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_SIZE,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
            delay=True,
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def create_logging_middleware(app, logger: logging.Logger):
    """
    Adds a middleware to log request & response time, IP, method and path.
    """
    @app.middleware("http")
    async def log_request_response_time(request: Request, call_next):
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "-"

        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        logger.info(
            "IP=%s | %s %s | Status=%s | Time=%.4fs",
            client_ip, request.method, request.url.path, response.status_code, process_time,
        )
        response.headers["X-Process-Time"] = str(round(process_time, 4))
        return response

    return app
