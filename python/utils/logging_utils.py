import logging
import traceback
from typing import Optional, Union

DEFAULT_FORMAT = "%(asctime)s - %(levelname)s - %(threadName)s - %(name)s - %(message)s"


def parse_log_level(level: Union[int, str, None]) -> int:
    """Translate a level name ("debug", "INFO") or number into a logging level."""
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def setup_logging(level: Union[int, str] = logging.INFO, fmt: Optional[str] = None) -> None:
    """Configure root logging once. Subsequent calls only adjust the level.

    Deletion tasks run on worker threads, so the default format includes the
    thread name.
    """
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(parse_log_level(level))
        return
    logging.basicConfig(level=parse_log_level(level), format=fmt or DEFAULT_FORMAT)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module/logger by name, after ensuring logging is configured."""
    setup_logging()
    return logging.getLogger(name) if name else logging.getLogger(__name__)


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
    """Centralized exception logging with full traceback.

    Args:
        logger: Logger instance to use
        message: Custom error message to log before the traceback
        exc_info: Exception instance (if None, uses current exception context)
    """
    logger.error(message)
    if exc_info is not None:
        logger.error(f"Exception type: {type(exc_info).__name__}")
        logger.error(f"Exception message: {str(exc_info)}")
        trace = "".join(traceback.format_exception(type(exc_info), exc_info, exc_info.__traceback__))
    else:
        trace = traceback.format_exc()
    logger.error("Full traceback:")
    logger.error(trace)
