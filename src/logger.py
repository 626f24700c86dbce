import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

import colorlog

CONSOLE_FORMAT = "%(log_color)s%(asctime)s %(levelname)-8s%(reset)s %(cyan)s%(name)s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s (%(filename)s:%(lineno)d)"

LOG_COLORS = {
    'DEBUG': 'blue',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'bold_red',
}

# uvicorn installs its own handlers unless told otherwise; route them through ours
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(log_level: Optional[str] = None) -> None:
    """Configure root logging for the app and the server running it.

    Render failures are logged by ``templating`` with their traceback, so the
    console handler colours by level and the optional file handler keeps the
    source location of each record.
    """
    log_level = (log_level or os.getenv('TEMPLATING_LOG_LEVEL', 'INFO')).upper()
    log_file = os.getenv('TEMPLATING_LOG_FILE')
    max_bytes = int(os.getenv('LOG_FILE_MAX_BYTES', '10485760'))  # 10 MB
    backup_count = int(os.getenv('LOG_FILE_BACKUP_COUNT', '5'))

    root = logging.getLogger()
    root.setLevel(log_level)

    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = []
        server_logger.propagate = True

    if root.hasHandlers():
        return

    console_handler = colorlog.StreamHandler()
    console_handler.setFormatter(colorlog.ColoredFormatter(CONSOLE_FORMAT, log_colors=LOG_COLORS))
    root.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(file_handler)
