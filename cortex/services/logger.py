import sys
from pathlib import Path
from loguru import logger
from cortex.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

def setup_logging(level: str | None = None, log_file: Path | None = None):
    logger.remove()
    logger.add(sys.stderr, level=level or settings.LOG_LEVEL, format=CONSOLE_FORMAT)

    # Debug trail on disk, rotated at 10 MB
    settings.ensure_dirs()
    logger.add(
        log_file or settings.DATA_DIR / "cortex.log",
        rotation="10 MB",
        retention=5,
        level="DEBUG",
    )

setup_logging()
