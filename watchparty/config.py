"""
Configuration module for WatchParty application.
"""

import logging
import os
from pathlib import Path

# Application settings
APP_NAME = "WatchParty"
VERSION = "0.1.0"
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

# Paths
BASE_DIR = Path(__file__).parent.parent
LOG_FILE = os.getenv("LOG_FILE", str(BASE_DIR / "logs" / "watchparty.log"))

# Logging configuration
LOG_LEVEL = logging.INFO if not DEBUG else logging.DEBUG
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging():
    """Configure application logging."""
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(LOG_LEVEL)
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if LOG_FILE:
        log_path = Path(LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(LOG_LEVEL)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(
        level=LOG_LEVEL,
        handlers=handlers,
        format=LOG_FORMAT
    )

    # Per-request and per-frame chatter
    noisy_loggers = [
        'uvicorn.protocols.http',
        'websockets.protocol',
        'watchfiles.main',
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger("watchparty")
    logger.info(f"{APP_NAME} v{VERSION} - Logging initialized")
    if LOG_FILE:
        logger.info(f"Log file: {LOG_FILE}")

    return logger


# Room settings
ROOM_CAPACITY = 2
ROOM_CODE_LENGTH = 6
USER_ID_LENGTH = 13
MESSAGE_HISTORY_LIMIT = int(os.getenv("MESSAGE_HISTORY_LIMIT", 20))

# WebSocket settings
WS_IDLE_TIMEOUT = float(os.getenv("WS_IDLE_TIMEOUT", 0))  # 0 disables idle eviction
MAX_MESSAGE_BYTES = int(os.getenv("MAX_MESSAGE_BYTES", 5 * 1024 * 1024))

# CORS settings
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "*").split(",")
    if origin.strip()
]
