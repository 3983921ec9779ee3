"""
Logging configuration and utilities.

Business code logs through structlog bound loggers (``logger.info("event", key=value)``),
rendered into the standard library handlers configured here. Log files rotate
at midnight and files older than the retention window are removed by a
background cleanup job.
"""

import logging
import logging.handlers
import sys
import time
import threading
from pathlib import Path
from typing import Optional
from datetime import datetime, timedelta

import schedule
import structlog


# Log files per business area, relative to the configured log directory
BUSINESS_LOGS = {
    "downloader": "downloader.log",
    "crawler": "crawler.log",
    "rules": "rules.log",
    "database": "database.log",
    "cli": "cli.log",
}

_log_dir: Optional[Path] = None
_retention_days: int = 7
_cleanup_started = False
_cleanup_lock = threading.Lock()


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    retention_days: int = 7,
    json_output: bool = False
) -> None:
    """
    Set up structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Optional directory for rotating log files
        retention_days: Number of days to retain log files
        json_output: Render events as JSON instead of key=value pairs
    """
    global _log_dir, _retention_days

    renderer = (
        structlog.processors.JSONRenderer(ensure_ascii=False)
        if json_output else structlog.processors.KeyValueRenderer(key_order=["event"])
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    root_logger.addHandler(console_handler)

    _retention_days = retention_days
    if log_dir:
        _log_dir = Path(log_dir)
        _log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = _create_file_handler(_log_dir / "novel_importer.log", retention_days)
        root_logger.addHandler(file_handler)

        for business_name in BUSINESS_LOGS:
            _attach_business_file_handler(business_name)

        _start_log_cleanup_scheduler(_log_dir, retention_days)
    else:
        _log_dir = None


def get_logger(name: str):
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)


def get_business_logger(business_name: str):
    """
    Get the logger for a business area ('downloader', 'crawler', 'rules', ...).

    When a log directory is configured the area also writes to its own
    rotating file; otherwise it only propagates to the root handlers.
    """
    _attach_business_file_handler(business_name)
    return structlog.get_logger(f"business.{business_name}")


def _attach_business_file_handler(business_name: str) -> None:
    std_logger = logging.getLogger(f"business.{business_name}")
    if _log_dir is None or std_logger.handlers:
        return
    log_file = BUSINESS_LOGS.get(business_name, f"{business_name}.log")
    std_logger.addHandler(_create_file_handler(_log_dir / log_file, _retention_days))


def _create_file_handler(path: Path, retention_days: int) -> logging.Handler:
    file_handler = logging.handlers.TimedRotatingFileHandler(
        path,
        when='midnight',
        interval=1,
        backupCount=retention_days,
        encoding='utf-8'
    )
    file_handler.suffix = "%Y-%m-%d"
    file_handler.setFormatter(logging.Formatter('%(message)s'))
    return file_handler


def _start_log_cleanup_scheduler(logs_dir: Path, retention_days: int) -> None:
    """Start the daily cleanup job once per process."""
    global _cleanup_started

    with _cleanup_lock:
        if _cleanup_started:
            return
        _cleanup_started = True

    def cleanup_job():
        cleanup_old_logs(logs_dir, retention_days)

    # Run every day at 02:00
    schedule.every().day.at("02:00").do(cleanup_job)

    def run_scheduler():
        while True:
            schedule.run_pending()
            time.sleep(60)

    scheduler_thread = threading.Thread(target=run_scheduler, name="log-cleanup", daemon=True)
    scheduler_thread.start()


def cleanup_old_logs(logs_dir: Path, retention_days: int = 7) -> int:
    """
    Remove log files older than the retention window.

    Args:
        logs_dir: Log directory
        retention_days: Days to keep

    Returns:
        Number of files removed
    """
    logs_dir = Path(logs_dir)
    if not logs_dir.exists():
        return 0

    logger = get_logger(__name__)
    cleaned_count = 0
    cutoff_date = datetime.now() - timedelta(days=retention_days)

    for log_file in logs_dir.glob("*.log*"):
        if not log_file.is_file():
            continue
        file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)
        if file_mtime < cutoff_date:
            try:
                log_file.unlink()
            except OSError as e:
                logger.warning("Failed to remove old log file", file=log_file.name, error=str(e))
                continue
            cleaned_count += 1

    if cleaned_count > 0:
        logger.info("Old log files removed", count=cleaned_count, directory=str(logs_dir))

    return cleaned_count


def log_business_operation(business_name: str, operation_name: Optional[str] = None):
    """
    Decorator that logs start, completion and failure of a business operation.

    Args:
        business_name: Business area name
        operation_name: Operation name, defaults to the function name
    """
    def decorator(func):
        def wrapper(*args, **kwargs):
            logger = get_business_logger(business_name)
            op_name = operation_name or func.__name__

            logger.info("Operation started", operation=op_name)
            start_time = time.time()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                logger.error("Operation failed", operation=op_name,
                             duration_seconds=round(duration, 2), error=str(e))
                raise

            duration = time.time() - start_time
            logger.info("Operation completed", operation=op_name,
                        duration_seconds=round(duration, 2))
            return result

        wrapper.__name__ = func.__name__
        wrapper.__doc__ = func.__doc__
        return wrapper
    return decorator
