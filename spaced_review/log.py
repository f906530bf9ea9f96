import sys

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default handler with a single stderr sink at `level`"""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {name}:{line} - {message}",
    )
