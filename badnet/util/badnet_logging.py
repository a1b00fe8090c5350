from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, cast

import colorlog
from concurrent_log_handler import ConcurrentRotatingFileHandler

from badnet import __version__

default_log_level = "WARNING"


def get_file_log_handler(
    formatter: logging.Formatter, root_path: Path, logging_config: dict[str, object]
) -> ConcurrentRotatingFileHandler:
    log_path = root_path / str(logging_config.get("log_filename", "log/badnet.log"))
    log_path.parent.mkdir(parents=True, exist_ok=True)
    maxrotation = cast(int, logging_config.get("log_maxfilesrotation", 7))
    maxbytesrotation = cast(int, logging_config.get("log_maxbytesrotation", 50 * 1024 * 1024))
    handler = ConcurrentRotatingFileHandler(
        os.fspath(log_path), "a", maxBytes=maxbytesrotation, backupCount=maxrotation
    )
    handler.setFormatter(formatter)
    return handler


def initialize_logging(service_name: str, logging_config: dict[str, Any], root_path: Path) -> None:
    """
    Attach a handler to the root logger: colored stdout when `log_stdout` is set,
    a rotating file under `root_path` otherwise.
    """
    log_level = logging_config.get("log_level", default_log_level)
    file_name_length = 33 - len(service_name)
    log_date_format = "%Y-%m-%dT%H:%M:%S"

    handler: logging.Handler
    if logging_config.get("log_stdout", False):
        handler = colorlog.StreamHandler()
        handler.setFormatter(
            colorlog.ColoredFormatter(
                f"%(asctime)s.%(msecs)03d {__version__} {service_name} %(name)-{file_name_length}s: "
                f"%(log_color)s%(levelname)-8s%(reset)s %(message)s",
                datefmt=log_date_format,
                reset=True,
            )
        )
    else:
        file_log_formatter = logging.Formatter(
            fmt=f"%(asctime)s.%(msecs)03d {__version__} {service_name} %(name)-{file_name_length}s: "
            f"%(levelname)-8s %(message)s",
            datefmt=log_date_format,
        )
        handler = get_file_log_handler(file_log_formatter, root_path, logging_config)

    logging.getLogger().addHandler(handler)

    set_log_level(log_level=log_level, service_name=service_name)


def resolve_log_level(log_level: str) -> int:
    """Numeric level for a name such as "INFO", raises ValueError for names logging does not know."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown level: {log_level!r}")
    return level


def set_log_level(log_level: str, service_name: str) -> list[str]:
    """
    Apply `log_level` to every handler of the root logger. An unknown level
    falls back to `default_log_level`, the problem is logged and returned.
    """
    root_logger = logging.getLogger()
    error_strings: list[str] = []
    try:
        level = resolve_log_level(log_level)
    except ValueError as e:
        level = resolve_log_level(default_log_level)
        error_strings.append(
            f"Invalid log level '{log_level}' for {service_name}. Defaulting to: {default_log_level}. Error: {e}"
        )

    for handler in root_logger.handlers:
        handler.setLevel(level)
    for error_string in error_strings:
        root_logger.error(error_string)

    # records below the root logger's own level never reach the handlers
    if len(root_logger.handlers) > 0:
        root_logger.setLevel(min(handler.level for handler in root_logger.handlers))

    if root_logger.level <= logging.DEBUG:
        # selector wakeups flood the log otherwise
        logging.getLogger("asyncio").setLevel(logging.INFO)

    return error_strings
