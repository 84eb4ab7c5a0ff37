"""
Logging Configuration for the PDF translation pipeline

Console output for operators, an optional detailed log file for debugging.

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-24s | %(funcName)-20s | %(message)s'
CONSOLE_FORMAT = '%(levelname)-8s | %(name)-20s | %(message)s'

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "urllib3", "PIL", "asyncio")


def setup_logging(level=logging.INFO, log_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Setup logging to the console and, when log_dir is given, to a
    timestamped file that captures everything down to DEBUG.

    Returns the log file path or None.
    """
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"pdfx_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        root_logger.addHandler(file_handler)

    logging.getLogger("pdfx").setLevel(logging.DEBUG)

    # Reduce noise from external libraries
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("pdfx.logging")
    if log_file:
        logger.info("Logging to %s", log_file)

    return log_file
