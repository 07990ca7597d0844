"""Logging helpers shared by the cleaner modules and the event sink."""

import logging
import sys
import traceback
from typing import Optional, TextIO, Union

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def resolve_level(level: Union[int, str, None]) -> int:
	"""Turn a level name ("debug", "WARNING") or number into a logging level; INFO when unknown."""
	if isinstance(level, int):
		return level
	if isinstance(level, str):
		resolved = logging.getLevelName(level.strip().upper())
		if isinstance(resolved, int):
			return resolved
	return logging.INFO


def setup_logging(level: Union[int, str, None] = None, fmt: Optional[str] = None) -> None:
	"""Configure root logging on first use.

	Once handlers exist only the level is adjusted, and only when one is given,
	so modules calling get_logger() at import time do not pin the level.
	"""
	root = logging.getLogger()
	if root.handlers:
		if level is not None:
			root.setLevel(resolve_level(level))
		return
	logging.basicConfig(level=resolve_level(level), format=fmt or DEFAULT_FORMAT)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	"""Return a module/logger by name, after ensuring logging is configured."""
	setup_logging()
	return logging.getLogger(name) if name else logging.getLogger(__name__)


def attach_stream_handler(name: str, stream: Optional[TextIO] = None, fmt: str = '%(message)s') -> logging.Logger:
	"""Give a logger its own bare stream handler (stderr by default).

	Used for line-oriented output such as cleanup events: records do not
	propagate to the root handler, so they are written exactly once and
	without the diagnostic prefix.
	"""
	logger = logging.getLogger(name)
	if not logger.handlers:
		handler = logging.StreamHandler(stream or sys.stderr)
		handler.setFormatter(logging.Formatter(fmt))
		logger.addHandler(handler)
		logger.propagate = False
	if logger.level == logging.NOTSET:
		logger.setLevel(logging.INFO)
	return logger


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
		details = "".join(traceback.format_exception(type(exc_info), exc_info, exc_info.__traceback__))
	else:
		details = traceback.format_exc()
	logger.error("Full traceback:")
	logger.error(details)
