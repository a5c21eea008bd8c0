import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Install a single stdout handler on the ``formrelay`` logger."""
    logger = logging.getLogger("formrelay")
    logger.setLevel(level)
    if not any(getattr(h, "_formrelay", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._formrelay = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
