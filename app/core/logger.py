import os
import logging
from logging.handlers import TimedRotatingFileHandler

from app.core.config import settings


def get_logger(name: str = "simlink"):
    logger = logging.getLogger(name)
    logger.setLevel(settings.LOG_LEVEL)

    # If no handlers are attached, add console + timed rotating file handler
    if not logger.handlers:
        console = logging.StreamHandler()
        console.setLevel(settings.LOG_LEVEL)
        console_fmt = logging.Formatter(
            "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
            "%Y-%m-%d %H:%M:%S"
        )
        console.setFormatter(console_fmt)
        logger.addHandler(console)

        # Rotates at midnight, keeps a week of files
        os.makedirs(settings.LOG_DIR, exist_ok=True)

        log_path = os.path.join(settings.LOG_DIR, f"{name}.log")
        file_handler = TimedRotatingFileHandler(
            filename=log_path,
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8",
            utc=False
        )
        file_handler.suffix = "%Y-%m-%d"
        file_handler.setLevel(settings.LOG_LEVEL)
        file_handler.setFormatter(console_fmt)
        logger.addHandler(file_handler)

    return logger
