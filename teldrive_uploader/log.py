import logging
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "teldrive_uploader"
LOG_FILE_NAME = "uploader_process.log"

_FORMATTER = logging.Formatter(
    "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%dT%H:%M:%S"
)


def resolve_log_file(log_path: Optional[str], base_dir: Path) -> Path:
    """Where the run log goes.

    ``LOG_PATH`` may name a directory (existing, or without a suffix) or a
    file; unset means ``<base_dir>/logs``.
    """
    if not log_path:
        target = base_dir / "logs" / LOG_FILE_NAME
    else:
        path = Path(log_path).expanduser()
        target = path / LOG_FILE_NAME if path.is_dir() or not path.suffix else path
    target.parent.mkdir(parents=True, exist_ok=True)
    return target


def build_logger(log_file: Path, console_level: str = "INFO") -> logging.Logger:
    """The run's logger: console at *console_level*, *log_file* always at DEBUG.

    Built once by the CLI and handed to every component.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers = (
        (logging.StreamHandler(sys.stdout), console_level.upper()),
        (logging.FileHandler(log_file, encoding="utf-8"), "DEBUG"),
    )
    for handler, level in handlers:
        handler.setLevel(level)
        handler.setFormatter(_FORMATTER)
        logger.addHandler(handler)
    return logger
