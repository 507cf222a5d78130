import os
import logging
from logging import Logger
from logging.handlers import RotatingFileHandler

DEFAULT_LOG_FILE = "/var/log/trackium.log"


def get_logger() -> Logger:
    logger = logging.getLogger("trackium")

    # Handlers are shared by every module asking for the logger
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)

    # Our own handlers decide what is shown, never the root logger configured by the CLI
    logger.propagate = False

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    debug = os.getenv("DEBUG", "0")

    if debug == "1":
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
        return logger

    log_file = os.getenv("TRACKIUM_LOG_FILE", DEFAULT_LOG_FILE)

    try:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3
        )
    except OSError as e:
        # Not running as a service (i.e no write access to /var/log)
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
        logger.warning(f"Cannot log to {log_file}, logging to console: {e}")
        return logger

    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger
