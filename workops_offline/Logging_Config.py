# Logging_Config.py
# Description: Configuration for logging
#
# Imports
import logging
import sys
from typing import Any, Dict, Optional
#
# 3rd-Party Imports
from loguru import logger as loguru_logger
#
# Local Imports
from workops_offline.config import get_log_file_path, get_setting
#
########################################################################################################################
#
# Functions:

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


# --- Standard logging → Loguru bridge ---
class InterceptHandler(logging.Handler):
    """Forwards records from the standard logging module (httpx, httpcore, sqlite helpers) into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back past the logging module frames so Loguru reports the real caller.
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(settings: Optional[Dict[str, Any]] = None, *, log_to_file: bool = True) -> None:
    """Sets up the Loguru sinks (stderr and a rotating file) and routes standard logging through them."""
    log_level = str(get_setting("logging", "log_level", "INFO", settings=settings)).upper()

    loguru_logger.remove()
    loguru_logger.add(sys.stderr, level=log_level, format=LOG_FORMAT)

    if log_to_file:
        log_file_path = get_log_file_path(settings)
        max_bytes = int(get_setting("logging", "log_max_bytes", 10485760, settings=settings))
        backup_count = int(get_setting("logging", "log_backup_count", 5, settings=settings))
        loguru_logger.add(
            str(log_file_path),
            level=log_level,
            format=LOG_FORMAT,
            rotation=max_bytes,
            retention=backup_count,
            encoding="utf-8",
        )
        loguru_logger.info(f"File logging enabled at {log_file_path} (level {log_level}).")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    loguru_logger.debug(f"Logging configured at level {log_level}.")

#
# End of Logging_Config.py
########################################################################################################################
