"""
Kho Logging Configuration
Centralized logging setup for the Kho application
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional
from .config import settings

MB = 1024 * 1024

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s() - %(message)s"

# Sub-loggers with their own file: (name, file, backups)
MODULE_LOGS = (
    ("remote", "remote.log", 3),
    ("business", "business.log", 10),  # audit of every voucher mutation
    ("notifications", "notifications.log", 3),
)


def _rotating_handler(
    path: Path,
    formatter: logging.Formatter,
    max_mb: int = 5,
    backups: int = 3,
    level: Optional[int] = None,
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * MB, backupCount=backups, encoding="utf-8"
    )
    handler.setFormatter(formatter)
    if level is not None:
        handler.setLevel(level)
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Configure the ``kho`` logger tree

    Console output is short; files get source location. With file logging
    on, ``app.log`` takes everything, ``error.log`` errors only, and each
    entry of MODULE_LOGS its own file.
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    if log_to_file is None:
        log_to_file = settings.LOG_TO_FILE

    logger = logging.getLogger("kho")
    logger.setLevel(level)
    logger.handlers.clear()

    file_formatter = logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(console_handler)

    log_dir = None
    if log_to_file:
        log_dir = settings.LOG_DIR
        log_dir.mkdir(exist_ok=True, parents=True)
        logger.addHandler(
            _rotating_handler(log_dir / settings.LOG_FILE, file_formatter, max_mb=10, backups=5, level=level)
        )
        logger.addHandler(
            _rotating_handler(log_dir / settings.ERROR_LOG_FILE, file_formatter, level=logging.ERROR)
        )

    setup_module_loggers(level, file_formatter, log_dir)

    return logger


def setup_module_loggers(
    level: int,
    file_formatter: logging.Formatter,
    log_dir: Optional[Path] = None
):
    """Setup loggers for specific modules"""
    for name, filename, backups in MODULE_LOGS:
        module_logger = logging.getLogger(f"kho.{name}")
        module_logger.setLevel(level)
        module_logger.handlers.clear()
        if log_dir:
            module_logger.addHandler(_rotating_handler(log_dir / filename, file_formatter, backups=backups))


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name"""
    return logging.getLogger(f"kho.{name}")


__all__ = [
    'setup_logging',
    'get_logger',
]
