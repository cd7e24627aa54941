"""
Console logging for the API process
"""
import logging
import logging.config
import os

_configured = False


def setup_logging(level: str = None) -> None:
    """Apply the console logging configuration once per process"""
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv("LOG_LEVEL", "info")).upper()
    debug_mode = level_name == "DEBUG"

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level_name,
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "handlers": ["console"],
            "level": level_name,
        },
    })

    # Suppress per-request client logs unless in debug mode
    for noisy in ("httpx", "openai"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if debug_mode else logging.WARNING)

    _configured = True
