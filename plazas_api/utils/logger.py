# plazas_api/utils/logger.py
"""
Logging setup for the Plazas API.
Console plus a rotating plazas.log. Service modules prefix their messages
with a bracketed domain tag ([RESERVA], [PAGO], [LLEGADA], [ABONO], [TARIFA],
[DISPONIBILIDAD], [PLAZA]) so one lot's history can be grepped out of the file.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from plazas_api.config import settings

APP_NAME = "plazas-api"
LOG_FILE = "plazas.log"
LOG_FORMAT = f"%(asctime)s | {APP_NAME} | %(levelname)-8s | %(name)s | %(message)s"

_configured = False


def log_dir() -> str:
    if settings.LOG_DIR:
        return settings.LOG_DIR
    return os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs")


def _configure_root_logger():
    global _configured
    if _configured:
        return
    _configured = True

    level = settings.LOG_LEVEL.upper()
    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console = logging.StreamHandler()
    console.setFormatter(fmt)

    directory = log_dir()
    os.makedirs(directory, exist_ok=True)
    # 10 files of 5MB each
    file_handler = RotatingFileHandler(
        filename=os.path.join(directory, LOG_FILE),
        maxBytes=5 * 1024 * 1024,
        backupCount=10,
        encoding="utf-8",
    )
    file_handler.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(console)
    root.addHandler(file_handler)

    logging.getLogger("sqlalchemy.engine").setLevel(settings.SQL_LOG_LEVEL.upper())


def get_logger(name: str) -> logging.Logger:
    """Named logger; the first call configures the root handlers."""
    _configure_root_logger()
    return logging.getLogger(name)
