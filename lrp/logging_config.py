"""
Logging setup for the lrp package.
"""

import logging
import os
from typing import Optional, Union

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_log_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    value = getattr(logging, level.upper(), None)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(level: Union[str, int] = 'INFO', log_file: Optional[str] = None,
                  log_format: str = DEFAULT_FORMAT) -> logging.Logger:
    """Configure the package logger with a console handler and an optional log file."""
    package_logger = logging.getLogger('lrp')
    package_logger.setLevel(get_log_level(level))
    package_logger.handlers = []  # Clear any existing handlers

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(log_format))
    package_logger.addHandler(console_handler)

    # File handler
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(log_format))
        package_logger.addHandler(file_handler)

    return package_logger
