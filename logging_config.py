# logging_config.py
import logging

from config import load_config

config = load_config()
DEBUG_MODE = config['DEBUG_MODE']

# Every catalog logger hangs under this name
APP_LOGGER_NAME = "herbario"

# Chatty third-party loggers, quieted unless DEBUG_MODE is on
NOISY_LOGGERS = ("werkzeug", "urllib3", "cloudinary")

logging.basicConfig(
    level=logging.DEBUG if DEBUG_MODE else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

if not DEBUG_MODE:
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Returns the catalog logger for a module, e.g. get_logger("catalog_store")
    gives "herbario.catalog_store".
    """
    if name == "__main__":
        return logging.getLogger(APP_LOGGER_NAME)
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")
