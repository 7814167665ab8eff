import logging
import sys
from pathlib import Path

from .config import LogConfig

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(threadName)s - %(message)s"

# paramiko logs every channel event at INFO; keep it out of our output
NOISY_LOGGERS = ("paramiko", "paramiko.transport")


def setup_logging(config: LogConfig) -> logging.Logger:
    """
    Configure the root logger for remoteview processes.

    Args:
        config: LogConfig object containing settings.

    Returns:
        The configured root logger.

    Note:
        - A FileHandler is added if config.file is set (parent dirs are created).
        - A StreamHandler (stderr) is added if config.console is True.
        - Unknown level names fall back to INFO.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Re-running setup must not duplicate output
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    if config.file:
        log_path = Path(config.file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if config.console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return root_logger
