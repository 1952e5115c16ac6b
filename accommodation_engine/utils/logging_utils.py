"""
Logging utilities for the accommodation engine
Location: accommodation_engine/utils/logging_utils.py
"""

import os
import json
import logging
from datetime import datetime
from typing import Optional


def setup_logging(log_level: str = 'INFO', log_file: Optional[str] = None, json_output: bool = False):
    """
    Setup application logging with the specified configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. If None, logs to console only.
        json_output: Emit one JSON object per line instead of plain text.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging_config = {
        'level': numeric_level,
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'datefmt': '%Y-%m-%d %H:%M:%S',
    }

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        logging_config['filename'] = log_file
        logging_config['filemode'] = 'a'

    logging.basicConfig(**logging_config)

    if json_output:
        for handler in logging.getLogger().handlers:
            handler.setFormatter(JsonFormatter())

    return logging.getLogger(__name__)


class JsonFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging
    """
    def format(self, record):
        log_record = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'line': record.lineno
        }

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)

        for attr in ('case_id', 'module_type'):
            if hasattr(record, attr):
                log_record[attr] = getattr(record, attr)

        return json.dumps(log_record)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Adapter that adds context to log messages
    """
    def __init__(self, logger, extra=None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        kwargs.setdefault('extra', {}).update(self.extra)
        if not self.extra:
            return msg, kwargs
        context_str = ' '.join(f'{k}={v}' for k, v in self.extra.items())
        return f"{msg} [{context_str}]", kwargs


def case_logger(name: str, case_id: str, module_type: str) -> LoggerAdapter:
    """Logger that stamps every line with the analysis case and module."""
    return LoggerAdapter(logging.getLogger(name), {'case_id': case_id, 'module_type': module_type})
