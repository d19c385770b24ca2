"""
Logging infrastructure for hmmkit.

Every module logs through a child of the 'hmmkit' logger, which does not
propagate to the root logger. It carries exactly one console handler,
swappable so the CLI can render through rich, and at most one file handler.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import get_config

ROOT_LOGGER_NAME = 'hmmkit'


def _level(name: Optional[str]) -> int:
    return getattr(logging, (name or 'INFO').upper())


def _formatter() -> logging.Formatter:
    return logging.Formatter(get_config('logging', 'format'))


class HMMKitLogger:
    """Owns the handlers of the 'hmmkit' logger."""

    def __init__(self):
        self.root = logging.getLogger(ROOT_LOGGER_NAME)
        self.root.handlers.clear()
        self.root.propagate = False
        self.root.setLevel(_level(get_config('logging', 'level')))

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(_formatter())
        self.use_console_handler(console_handler)

        if get_config('logging', 'file_logging'):
            self.enable_file_logging()

    def _file_handlers(self) -> List[logging.FileHandler]:
        return [h for h in self.root.handlers if isinstance(h, logging.FileHandler)]

    def get_logger(self, name: str) -> logging.Logger:
        """Logger for a module, placed under 'hmmkit' unless already there."""
        if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + '.'):
            name = f'{ROOT_LOGGER_NAME}.{name}'
        return logging.getLogger(name)

    def set_level(self, level: str):
        log_level = _level(level)
        self.root.setLevel(log_level)
        for handler in self.root.handlers:
            handler.setLevel(log_level)

    def use_console_handler(self, handler: logging.Handler):
        """Replace the console handler, keeping any file handler."""
        for existing in list(self.root.handlers):
            if not isinstance(existing, logging.FileHandler):
                self.root.removeHandler(existing)

        handler.setLevel(self.root.level)
        self.root.addHandler(handler)

    def enable_file_logging(self, log_file: Optional[str] = None):
        """Add a file handler unless one is already attached."""
        if self._file_handlers():
            return

        log_path = Path(log_file or get_config('logging', 'log_file') or 'hmmkit.log')
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(self.root.level)
        file_handler.setFormatter(_formatter())
        self.root.addHandler(file_handler)

    def disable_file_logging(self):
        for handler in self._file_handlers():
            self.root.removeHandler(handler)
            handler.close()


# Global logger manager instance
_logger_manager = HMMKitLogger()


def get_logger(name: str = 'main') -> logging.Logger:
    """Get a logger instance for the specified module/component."""
    return _logger_manager.get_logger(name)


def set_log_level(level: str):
    """Set global logging level."""
    _logger_manager.set_level(level)


def use_console_handler(handler: logging.Handler):
    """Route console logging through the given handler."""
    _logger_manager.use_console_handler(handler)


def enable_file_logging(log_file: Optional[str] = None):
    """Enable file logging globally."""
    _logger_manager.enable_file_logging(log_file)


def disable_file_logging():
    """Disable file logging globally."""
    _logger_manager.disable_file_logging()
