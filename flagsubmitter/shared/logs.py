import sys

from loguru import logger

FORMAT = "<d>[{time:HH:mm:ss}]</d> <level>{level: <8}</level> {message}"

config = {
    "handlers": [
        {
            "sink": sys.stdout,
            "format": FORMAT,
            "level": "INFO",
        },
    ],
}

logger = logger.opt(colors=True)
logger.configure(**config)


def set_verbose():
    """Reconfigures the stdout sink to also show debug messages."""
    logger.configure(
        handlers=[{"sink": sys.stdout, "format": FORMAT, "level": "DEBUG"}]
    )
