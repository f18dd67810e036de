import logging
from logging.handlers import RotatingFileHandler
import os

from config import get_log_file

# Resolved once at import; tests may monkeypatch it before creating loggers.
LOG_FILE = get_log_file()


def setup_logger(name: str) -> logging.Logger:
    """Configure and return a module-level logger.

    Logs are written to both console and a rotating file so that rejected
    opportunities and indicator failures can be inspected after the fact.
    Subsequent calls with the same name return the already configured
    logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    try:
        directory = os.path.dirname(LOG_FILE)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # Rotating file handler keeps last 5 logs of ~1MB each
        file_handler = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=5)
    except OSError as exc:
        logger.warning("File logging disabled for %s: %s", LOG_FILE, exc)
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    return logger

