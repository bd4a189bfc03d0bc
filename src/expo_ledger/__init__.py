"""Exhibition stall registration and sales ledger.

Importing the package wires up the ``expo_ledger`` logger: a rotating file
under ``.logs/`` at the project root that keeps INFO and above, and a stderr
handler that only shows warnings and errors.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_FILE = PROJECT_ROOT / ".logs" / "expo_ledger.log"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUPS = 5


def _file_handler(log_file: Path, formatter: logging.Formatter) -> Optional[logging.Handler]:
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUPS,
            encoding="utf-8",
        )
    except OSError as exc:
        # Read-only installs still get console output.
        print(f"expo_ledger: file logging disabled ({log_file}): {exc}", file=sys.stderr)
        return None
    handler.setLevel(logging.INFO)
    handler.setFormatter(formatter)
    return handler


def configure_logging(name: str = __name__, log_file: Path = LOG_FILE) -> logging.Logger:
    """Attach the file and console handlers to logger ``name``.

    Calling it again for a logger that already has handlers is a no-op, so
    re-importing the package never duplicates output.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    file_handler = _file_handler(log_file, formatter)
    if file_handler is not None:
        logger.addHandler(file_handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.WARNING)
    console.setFormatter(formatter)
    logger.addHandler(console)
    return logger


log = configure_logging()
log.debug("expo_ledger logging ready (file: %s)", LOG_FILE)
