import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger


def setup_logging(level: int | str = logging.INFO, log_file: Optional[str] = "pitstop-debug.log") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger()
    logger.setLevel(level)

    fmt = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s %(pathname)s %(lineno)d"
    )

    # Stream handler to stdout
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(fmt)

    # Errors also go to stderr in a human-readable format
    err_fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(err_fmt)

    file_handler = None
    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(fmt)
        except OSError:
            logger.warning("Could not open log file %s; file logging disabled", log_file)

    logger.handlers = []
    logger.addHandler(stream_handler)
    logger.addHandler(stderr_handler)
    if file_handler:
        logger.addHandler(file_handler)

    uv_err = logging.getLogger("uvicorn.error")
    uv_err.setLevel(level)
    uv_err.propagate = False
    uv_err.handlers = []
    uv_err.addHandler(stream_handler)
    uv_err.addHandler(stderr_handler)
    if file_handler:
        uv_err.addHandler(file_handler)

    uv_access = logging.getLogger("uvicorn.access")
    uv_access.setLevel(level)
    uv_access.propagate = False

    # SQL echo is controlled by DB_ECHO, keep the engine logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("watchfiles").setLevel(logging.ERROR)
    logging.getLogger("watchfiles").propagate = False
