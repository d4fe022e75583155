"""
Logging setup for TechSync
Console and rotating file output with secrets masked before they reach a handler
"""

import json
import logging
import logging.handlers
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

SENSITIVE_FIELDS = (
    'password', 'secret', 'token', 'key', 'apikey', 'api_key',
    'authorization', 'x-sync-secret', 'cookie'
)

MASK = '***'


class SecuritySafeFormatter(logging.Formatter):
    """Formatter that masks credentials in messages and arguments"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        fields = '|'.join(re.escape(f) for f in sorted(SENSITIVE_FIELDS, key=len, reverse=True))
        # field=value, field: value, "field": "value"
        self._field_pattern = re.compile(
            rf'(?P<field>[\w-]*(?:{fields}))(?P<sep>["\']?\s*[:=]\s*["\']?)(?P<value>[^"\'\s,}}&]+)',
            re.IGNORECASE
        )
        self._bearer_pattern = re.compile(r'(Bearer\s+)[A-Za-z0-9._~+/=-]+', re.IGNORECASE)

    def format(self, record: logging.LogRecord) -> str:
        record.msg = self.sanitize(record.getMessage())
        record.args = None
        return super().format(record)

    def sanitize(self, message: str) -> str:
        message = self._bearer_pattern.sub(rf'\1{MASK}', message)
        return self._field_pattern.sub(lambda m: f"{m.group('field')}{m.group('sep')}{MASK}", message)


class JSONFormatter(SecuritySafeFormatter):
    """One JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'component': record.name,
            'message': self.sanitize(record.getMessage())
        }
        if record.exc_info:
            log_data['stack_trace'] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False)


def _build_formatter(kind: str) -> logging.Formatter:
    if kind == 'json':
        return JSONFormatter()
    return SecuritySafeFormatter(TEXT_FORMAT)


def setup_logging(config: Optional[Dict[str, Any]] = None) -> List[logging.Handler]:
    """
    Configure the root logger from the `logging` config section.

    Replaces any handlers installed by a previous call, so it is safe to
    call once per process entry point (API startup, each CLI command).
    """
    settings = (config or {}).get('logging', {}) or {}
    level_name = str(settings.get('level', 'INFO')).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level '{level_name}'")

    formatter = _build_formatter(str(settings.get('format', 'text')).lower())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        if getattr(handler, '_techsync', False):
            root_logger.removeHandler(handler)
            handler.close()

    handlers: List[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    log_file = settings.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=int(settings.get('max_bytes', 10 * 1024 * 1024)),
            backupCount=int(settings.get('backup_count', 5)),
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
        handler._techsync = True
        root_logger.addHandler(handler)

    # httpx logs every request at INFO, including query strings
    logging.getLogger('httpx').setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).debug(f"Logging configured at {level_name}")
    return handlers
