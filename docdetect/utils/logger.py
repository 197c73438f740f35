import logging
import os
import sys
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _log_dir() -> str:
    return os.environ.get("DOCDETECT_LOG_DIR") or os.path.join(
        os.path.expanduser("~"), ".docdetect", "logs"
    )


def setup_logger(name="docdetect"):
    """
    Configure a logger writing to a rotating file and stderr.

    Never stdout: the CLI prints the summary JSON there.
    Calling it twice for the same name does not add duplicate handlers.
    """
    logger = logging.getLogger(name)
    level_name = os.environ.get("DOCDETECT_LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    log_dir = _log_dir()
    try:
        os.makedirs(log_dir, exist_ok=True)
        # Max 5MB, keep 3 backups
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "docdetect.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        # Read-only home directories still get stderr logging
        sys.stderr.write(f"docdetect: file logging disabled ({e})\n")

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger


logger = setup_logger()
