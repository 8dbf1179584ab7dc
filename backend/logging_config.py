"""
Secure logging configuration for crypto crash game backend
Removes sensitive data from logs and provides structured logging
"""

import logging
import re
from typing import Any
from datetime import datetime, timezone

SERVICE_NAME = 'crypto-crash-backend'

# List of sensitive fields that should be masked in logs
SENSITIVE_FIELDS = {
    'password', 'token', 'secret', 'key', 'api_key', 'auth', 'authorization',
    'bearer', 'private_key', 'signature', 'hmac', 'session_id', 'ip_address'
}

# Regex patterns for sensitive data
SENSITIVE_PATTERNS = [
    (re.compile(r'(\w+://)([^:/@\s]+):([^@\s]+)@'), r'\1***:***@'),  # credentials in URLs
    (re.compile(r'(token|key|secret|password)\s*[:=]\s*["\']?([^"\'\s&]+)', re.IGNORECASE), r'\1=***MASKED***'),
    (re.compile(r'(Authorization|Bearer)\s+([^\s]+)', re.IGNORECASE), r'\1 ***MASKED***'),
]

class SecureFormatter(logging.Formatter):
    """Custom formatter that masks sensitive data"""

    def format(self, record: logging.LogRecord) -> str:
        # Format the record normally first
        formatted = super().format(record)

        # Apply sensitive data masking
        return self.mask_sensitive_data(formatted)

    def mask_sensitive_data(self, text: str) -> str:
        """Remove or mask sensitive data from log text"""
        if not text:
            return text

        for pattern, replacement in SENSITIVE_PATTERNS:
            text = pattern.sub(replacement, text)

        return text

class StructuredLogFilter(logging.Filter):
    """Filter that adds structured information and masks sensitive data"""

    def filter(self, record: logging.LogRecord) -> bool:
        # Add timestamp in ISO format
        record.timestamp = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')

        # Add service identifier
        record.service = SERVICE_NAME

        # Mask sensitive data in the message
        if hasattr(record, 'msg') and record.msg:
            record.msg = self._mask_sensitive_dict(record.msg)

        # Mask sensitive data in args
        if hasattr(record, 'args') and record.args:
            record.args = tuple(
                self._mask_sensitive_dict(arg) if isinstance(arg, (dict, str)) else arg
                for arg in record.args
            )

        return True

    def _mask_sensitive_dict(self, data: Any) -> Any:
        """Recursively mask sensitive data in dictionaries and strings"""
        if isinstance(data, dict):
            masked_dict = {}
            for key, value in data.items():
                if isinstance(key, str) and key.lower() in SENSITIVE_FIELDS:
                    masked_dict[key] = '***MASKED***'
                else:
                    masked_dict[key] = self._mask_sensitive_dict(value)
            return masked_dict
        elif isinstance(data, str):
            return self._mask_sensitive_string(data)
        elif isinstance(data, (list, tuple)):
            return type(data)(self._mask_sensitive_dict(item) for item in data)
        else:
            return data

    def _mask_sensitive_string(self, text: str) -> str:
        """Mask sensitive patterns in strings"""
        for pattern, replacement in SENSITIVE_PATTERNS:
            text = pattern.sub(replacement, text)
        return text

def setup_secure_logging(level: int = logging.INFO):
    """Setup secure logging configuration for the entire application"""

    # Get root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Console handler with secure formatting
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    formatter = SecureFormatter(
        '%(timestamp)s - %(service)s - %(levelname)s - %(name)s - %(message)s'
    )
    console_handler.setFormatter(formatter)
    console_handler.addFilter(StructuredLogFilter())

    root_logger.addHandler(console_handler)

    # Configure specific loggers
    loggers_config = {
        'uvicorn': logging.WARNING,  # Reduce uvicorn verbosity
        'uvicorn.access': logging.WARNING,
        'sqlalchemy.engine': logging.WARNING,
        'asyncio': logging.WARNING,
        'aiohttp': logging.WARNING,
    }

    for logger_name, logger_level in loggers_config.items():
        logger = logging.getLogger(logger_name)
        logger.setLevel(logger_level)
        logger.propagate = True  # Allow propagation to root logger

def mask_sensitive_data(data: Any) -> Any:
    """Utility function to mask sensitive data in any object"""
    filter_instance = StructuredLogFilter()
    return filter_instance._mask_sensitive_dict(data)
