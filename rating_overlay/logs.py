"""
Log sink configuration for Media Rating Overlay.

The project logger is created in ``constants`` with a stdout handler so that
early messages are visible. Once the config is loaded, configure_logging()
attaches a rotating file handler (optionally JSON and gzip-compressed),
applies the level and removes stdout output when disabled.
"""

import gzip
import json
import logging
import os
import shutil
import sys
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import LoggerConfig, get_env
from .constants import logger, DEFAULT_LOG_FILE_PATH, PROD_ENV, SERVICE_NAME, SERVICE_VERSION

CONSOLE_FORMAT = '| %(levelname)-8s | %(message)s'
FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(threadName)s | %(message)s'

_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, tagged with service name and version."""

    def __init__(self, service_name: str, service_version: str):
        super().__init__()
        self.service_name = service_name
        self.service_version = service_version

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec='seconds'),
            'level': record.levelname.lower(),
            'logger': record.name,
            'caller': f"{record.module}:{record.lineno}",
            'message': record.getMessage(),
            'service': self.service_name,
            'version': self.service_version,
        }
        if record.exc_info:
            payload['stacktrace'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def default_level(env: Optional[str] = None) -> int:
    """Debug everywhere except production."""
    return logging.INFO if (env or get_env()) == PROD_ENV else logging.DEBUG


def level_from_string(level: str, env: Optional[str] = None) -> int:
    return _LEVELS.get((level or '').lower(), default_level(env))


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, 'rb') as src, gzip.open(dest, 'wb') as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


def _gzip_namer(name: str) -> str:
    return name + '.gz'


def prune_old_logs(log_path: Path, max_age_days: int) -> int:
    """Delete rotated log files older than ``max_age_days``. 0 keeps everything."""
    if max_age_days <= 0 or not log_path.parent.exists():
        return 0
    cutoff = time.time() - max_age_days * 86400
    removed = 0
    for candidate in log_path.parent.glob(log_path.name + '.*'):
        try:
            if candidate.stat().st_mtime < cutoff:
                candidate.unlink()
                removed += 1
        except OSError as e:
            logger.warning(f"LOG_PRUNE_FAILED path={candidate} error={e}")
    return removed


def configure_logging(config: LoggerConfig, env: Optional[str] = None) -> logging.Logger:
    """Attach file output to the project logger according to ``config``."""
    log_path = Path(config.log_file_path or DEFAULT_LOG_FILE_PATH)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.touch(exist_ok=True)
    os.chmod(log_path, 0o644)

    level = level_from_string(config.log_level, env)
    service_name = config.service_name or SERVICE_NAME
    service_version = config.service_version or SERVICE_VERSION

    # Replace handlers from a previous configuration
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=config.max_size * 1024 * 1024,
        backupCount=config.max_backups,
        encoding='utf-8',
    )
    if config.compress:
        file_handler.rotator = _gzip_rotator
        file_handler.namer = _gzip_namer
    if config.use_json:
        file_handler.setFormatter(JSONFormatter(service_name, service_version))
    else:
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    file_handler.setLevel(level)
    logger.addHandler(file_handler)

    if config.use_stdout:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

    # The root stdout handler from basicConfig would duplicate records
    logger.propagate = False
    logger.setLevel(level)

    pruned = prune_old_logs(log_path, config.max_age)
    if pruned:
        logger.debug(f"LOG_PRUNED removed={pruned}")

    logger.info('-' * 50)
    logger.info(f"Welcome to Media Rating Overlay service={service_name} version={service_version}")
    logger.info('-' * 50)
    return logger
