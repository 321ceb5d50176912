"""
Logging Configuration for Unit Cache

This module provides centralized logging configuration for the package,
ensuring consistent logging across all cache services and loaders.

Library code only asks for component loggers; handlers are installed when
an application (the CLI) calls setup_logging().
"""

import os
import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime


LOGGER_PREFIX = 'unitcache'


class ColoredFormatter(logging.Formatter):
    """Colored console formatter for better readability"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        return super().format(record)


class UnitCacheLogger:
    """Centralized logger configuration for Unit Cache"""

    def __init__(self, log_dir: Optional[str] = None, console_level: str = "INFO",
                 file_level: str = "DEBUG", enable_console: bool = True):
        """
        Initialize logging system

        Args:
            log_dir: Directory for log files (default: ~/.unitcache/logs)
            console_level: Console logging level
            file_level: File logging level
            enable_console: Whether to enable console logging
        """
        self.log_dir = log_dir or os.path.expanduser('~/.unitcache/logs')
        self.console_level = getattr(logging, console_level.upper())
        self.file_level = getattr(logging, file_level.upper())
        self.enable_console = enable_console

        Path(self.log_dir).mkdir(parents=True, exist_ok=True)

        self._setup_root_logger()
        self._setup_component_loggers()

    def _setup_root_logger(self):
        """Setup root logger with handlers"""
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)

        # Clear existing handlers
        root_logger.handlers.clear()

        if self.enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(self.console_level)
            console_formatter = ColoredFormatter(
                '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                datefmt='%H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            root_logger.addHandler(console_handler)

        # Main log file (rotating)
        main_log_file = os.path.join(self.log_dir, 'unitcache.log')
        file_handler = logging.handlers.RotatingFileHandler(
            main_log_file, maxBytes=10*1024*1024, backupCount=5
        )
        file_handler.setLevel(self.file_level)
        file_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

        session_timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')

        # Performance log file (for timing analysis)
        perf_log_file = os.path.join(self.log_dir, f'performance_{session_timestamp}.log')
        self.perf_handler = logging.FileHandler(perf_log_file, delay=True)
        self.perf_handler.setLevel(logging.INFO)
        perf_formatter = logging.Formatter(
            '%(asctime)s,%(message)s',  # CSV-like format for analysis
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        self.perf_handler.setFormatter(perf_formatter)
        perf_logger = logging.getLogger(f'{LOGGER_PREFIX}.performance')
        perf_logger.handlers.clear()
        perf_logger.addHandler(self.perf_handler)
        perf_logger.propagate = False

        # Error log file (errors and warnings only)
        error_log_file = os.path.join(self.log_dir, f'errors_{session_timestamp}.log')
        error_handler = logging.FileHandler(error_log_file, delay=True)
        error_handler.setLevel(logging.WARNING)
        error_handler.setFormatter(file_formatter)
        root_logger.addHandler(error_handler)

    def _setup_component_loggers(self):
        """Setup loggers for specific components"""
        default_level = logging.DEBUG if self.console_level <= logging.DEBUG else logging.INFO
        components = {
            f'{LOGGER_PREFIX}.main': default_level,
            f'{LOGGER_PREFIX}.cache': default_level,
            f'{LOGGER_PREFIX}.metadata': default_level,
            f'{LOGGER_PREFIX}.validator': default_level,
            f'{LOGGER_PREFIX}.reaper': default_level,
            f'{LOGGER_PREFIX}.loader': default_level,
            f'{LOGGER_PREFIX}.batch': default_level,
            f'{LOGGER_PREFIX}.config': default_level,
            f'{LOGGER_PREFIX}.performance': logging.DEBUG,
        }

        for component, level in components.items():
            logging.getLogger(component).setLevel(level)

    def get_logger(self, name: str) -> logging.Logger:
        """Get a logger for a specific component"""
        return get_logger(name)


_logger_instance = None


def setup_logging(log_dir: Optional[str] = None, console_level: str = "INFO",
                  file_level: str = "DEBUG", enable_console: bool = True) -> UnitCacheLogger:
    """Setup global logging configuration"""
    global _logger_instance
    _logger_instance = UnitCacheLogger(log_dir, console_level, file_level, enable_console)
    return _logger_instance


def get_logger(name: str = 'main') -> logging.Logger:
    """Get a component logger"""
    return logging.getLogger(f'{LOGGER_PREFIX}.{name}')


def get_performance_logger() -> logging.Logger:
    """Get performance logger for timing data"""
    return logging.getLogger(f'{LOGGER_PREFIX}.performance')


def log_cache_operation(operation: str, unit_name: str, hit: bool, duration: float = 0):
    """Log cache operations"""
    logger = get_logger('cache')

    if operation == 'get':
        status = 'HIT' if hit else 'MISS'
        logger.debug(f"Cache {status}: {unit_name}")
    elif operation == 'set':
        logger.debug(f"Cache SET: {unit_name}")
    elif operation == 'evict':
        logger.info(f"Cache EVICT: {unit_name}")
    elif operation == 'cleanup':
        logger.info(f"Cache cleanup: {unit_name}")

    get_performance_logger().info(f"CACHE,{operation},{unit_name},{hit},{duration:.3f}")


def log_batch_start(request_count: int, workers: int, force: bool):
    """Log start of batch load"""
    logger = get_logger('batch')
    logger.info(f"Starting batch load: {request_count} units, Workers: {workers}, Force: {force}")
    get_performance_logger().info(f"BATCH_START,{request_count},{workers},{force}")


def log_batch_complete(total: int, successful: int, failed: int, cancelled: int, total_time: float):
    """Log completion of batch load"""
    logger = get_logger('batch')

    success_rate = (successful / total * 100) if total > 0 else 0
    logger.info(f"Batch load complete: {successful}/{total} successful ({success_rate:.1f}%)")
    if failed:
        logger.warning(f"Batch load had {failed} failures ({cancelled} cancelled)")
    average = total_time / total if total > 0 else 0
    logger.info(f"Total time: {total_time:.2f}s, Average: {average:.3f}s per unit")

    get_performance_logger().info(f"BATCH_COMPLETE,{total},{successful},{failed},{cancelled},{total_time:.3f}")


def log_error(component: str, error: BaseException, context: Dict[str, Any] = None):
    """Log errors with context"""
    logger = get_logger(component)

    logger.error(f"Error in {component}: {type(error).__name__}: {str(error)}")
    if context:
        logger.error(f"  Context: {context}")

    logger.debug("Stack trace:", exc_info=error)


def log_performance_summary(stats: Dict[str, Any]):
    """Log cache performance summary"""
    logger = get_logger('performance')
    performance = stats.get('performance', {})

    logger.info("Performance Summary:")
    logger.info(f"  Memory entries: {stats.get('memory_entries', 0)}")
    logger.info(f"  Disk entries: {stats.get('disk_entries', 0)}")
    logger.info(f"  Cache size: {stats.get('total_cache_size_mb', 0):.2f} MB")
    logger.info(f"  Hit rate: {performance.get('hit_rate', 0):.1f}%")

    get_performance_logger().info(
        f"SUMMARY,{stats.get('memory_entries', 0)},{stats.get('disk_entries', 0)},"
        f"{performance.get('hit_rate', 0):.1f}"
    )
