"""
Logging Setup for shrinkwrap
Initializes logging configuration from YAML file
"""

import copy
import glob
import os
import logging
import logging.config
from datetime import datetime
from typing import Optional

import yaml
from colorama import init, Fore, Style

# Initialize colorama for Windows compatibility
init(autoreset=True)

LOGGER_NAME = 'shrinkwrap'

DEFAULT_LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'detailed': {
            'format': '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
        'console': {
            'format': '%(asctime)s | %(levelname)-8s | %(message)s',
            'datefmt': '%H:%M:%S'
        }
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'level': 'WARNING',
            'formatter': 'console',
            'stream': 'ext://sys.stdout'
        },
        'file': {
            'class': 'logging.FileHandler',
            'level': 'DEBUG',
            'formatter': 'detailed',
            'filename': 'logs/shrinkwrap.log',
            'mode': 'a',
            'encoding': 'utf-8'
        },
        'error_file': {
            'class': 'logging.FileHandler',
            'level': 'ERROR',
            'formatter': 'detailed',
            'filename': 'logs/errors.log',
            'mode': 'a',
            'encoding': 'utf-8'
        }
    },
    'root': {
        'level': 'DEBUG',
        'handlers': ['console', 'file', 'error_file']
    }
}


class ColoredFormatter(logging.Formatter):
    """Custom formatter to add colors to console output"""

    COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.MAGENTA + Style.BRIGHT,
    }

    def format(self, record):
        # Color a copy so file handlers sharing the record keep plain level names
        record = copy.copy(record)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{Style.RESET_ALL}"
        return super().format(record)


def get_package_base_dir() -> str:
    return os.path.abspath(os.path.dirname(__file__))


def _cleanup_old_logs(logs_dir: str = "logs", keep_count: int = 5):
    """
    Clean up old timestamped log files, keeping only the last N executions

    Args:
        logs_dir: Directory containing log files
        keep_count: Number of most recent log files to keep
    """
    run_logs = glob.glob(os.path.join(logs_dir, "shrinkwrap_*.log"))
    if len(run_logs) <= keep_count:
        return

    run_logs.sort(key=os.path.getmtime, reverse=True)
    for old_log in run_logs[keep_count:]:
        try:
            os.remove(old_log)
        except OSError as e:
            logging.getLogger(LOGGER_NAME).debug(f"Could not remove old log {old_log}: {e}")


def _load_logging_config(config_path: Optional[str]) -> dict:
    if config_path and os.path.exists(config_path):
        with open(config_path, 'r', encoding='utf-8') as file:
            config_data = yaml.safe_load(file) or {}
        return config_data.get('logging', copy.deepcopy(DEFAULT_LOGGING_CONFIG))
    return copy.deepcopy(DEFAULT_LOGGING_CONFIG)


def setup_logging(config_path: Optional[str] = None, log_level: Optional[str] = None,
                  logs_dir: str = "logs") -> logging.Logger:
    """
    Setup logging configuration from YAML file

    Args:
        config_path: Path to logging configuration file (defaults to the packaged logging.yaml)
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logs_dir: Directory that receives the file handlers' output
    """
    if config_path is None:
        config_path = os.path.join(get_package_base_dir(), 'config', 'logging.yaml')

    os.makedirs(logs_dir, exist_ok=True)

    try:
        logging_config = _load_logging_config(config_path)

        # Redirect file handlers into logs_dir; the run log is timestamped per execution
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        for name, handler in logging_config.get('handlers', {}).items():
            filename = handler.get('filename')
            if not filename:
                continue
            if name == 'file':
                filename = f"shrinkwrap_{timestamp}.log"
            handler['filename'] = os.path.join(logs_dir, os.path.basename(filename))

        if log_level:
            log_level = log_level.upper()
            if 'root' in logging_config:
                logging_config['root']['level'] = log_level
            console = logging_config.get('handlers', {}).get('console')
            if console:
                console['level'] = log_level

        logging.config.dictConfig(logging_config)
    except (OSError, ValueError, TypeError, AttributeError, yaml.YAMLError) as config_error:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s | %(levelname)-8s | %(message)s',
            datefmt='%H:%M:%S'
        )
        logger = logging.getLogger(LOGGER_NAME)
        logger.error(f"Failed to apply logging configuration: {config_error}")
        logger.info("Using basic logging configuration as fallback")
        return logger

    _cleanup_old_logs(logs_dir, keep_count=5)

    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setFormatter(ColoredFormatter(
                fmt='%(asctime)s | %(levelname)-8s | %(message)s',
                datefmt='%H:%M:%S'
            ))

    logger = logging.getLogger(LOGGER_NAME)
    logger.info("Logging initialized")
    return logger
