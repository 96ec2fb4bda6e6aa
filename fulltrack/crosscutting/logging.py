import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
search_id_var: ContextVar[Optional[str]] = ContextVar('search_id', default=None)
provider_var: ContextVar[Optional[str]] = ContextVar('provider', default=None)

ROOT_LOGGER = 'fulltrack'


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        # Patterns for "name: value" / "name=value" pairs in free text
        self.patterns = [
            # API tokens and keys
            r'(?i)(token|key|secret|password|auth)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Client secrets
            r'(?i)(client_secret)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Authorization headers
            r'(?i)(authorization|bearer)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{50,})["\']?',
        ]
        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

        # Provider credentials carried in media URLs (SoundCloud client_id, Jamendo client_id, ...)
        self.query_param_pattern = re.compile(
            r'(?i)([?&](?:client_id|client_secret|api_key|apikey|access_token|token|key|signature|sig)=)([^&#\s"\']+)'
        )

    @staticmethod
    def _mask_value(secret: str) -> str:
        # Keep first 4 and last 4 characters, mask the rest
        if len(secret) > 8:
            return secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
        return '*' * len(secret)

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = self.query_param_pattern.sub(
            lambda match: match.group(1) + self._mask_value(match.group(2)), text
        )

        for pattern in self.compiled_patterns:
            def replace_match(match):
                prefix = match.group(1)
                return f"{prefix}: {self._mask_value(match.group(2))}"

            masked_text = pattern.sub(replace_match, masked_text)

        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary."""
        if not data:
            return data

        masked_data = {}

        for key, value in data.items():
            if isinstance(value, str):
                masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                    else self.mask_secrets(item) if isinstance(item, str)
                                    else item for item in value]
            else:
                masked_data[key] = value

        return masked_data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        """Initialize formatter."""
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        search_id = search_id_var.get()
        provider = provider_var.get()
        if search_id:
            log_entry['searchId'] = search_id
        if provider:
            log_entry['provider'] = provider

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        fields = getattr(record, 'fields', None)
        if fields:
            log_entry['fields'] = self.masker.mask_dict(fields)

        return json.dumps(log_entry, ensure_ascii=False)


class MaskingTextFormatter(logging.Formatter):
    """Plain-text formatter that still masks secrets; used for interactive terminals."""

    def __init__(self):
        super().__init__('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        return self.masker.mask_secrets(super().format(record))


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, search_id: Optional[str] = None, provider: Optional[str] = None):
        """Initialize correlation context."""
        self.search_id = search_id
        self.provider = provider
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        if self.search_id is not None:
            self._tokens.append((search_id_var, search_id_var.set(self.search_id)))
        if self.provider is not None:
            self._tokens.append((provider_var, provider_var.set(self.provider)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def setup_logging(level: str = 'INFO',
                  fmt: str = 'json',
                  log_file: Optional[str] = None) -> logging.Logger:
    """Setup logging for the ``fulltrack`` logger tree."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    formatter = StructuredFormatter() if fmt == 'json' else MaskingTextFormatter()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Get logger with structured formatting."""
    return logging.getLogger(name)


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, exc_info: bool = False, **kwargs):
    """Log message with additional fields."""
    merged = dict(fields or {})
    merged.update(kwargs)
    logger.log(getattr(logging, level.upper()), message,
               extra={'fields': merged} if merged else None, exc_info=exc_info)


def log_error(logger: logging.Logger, message: str, error: Exception,
              level: str = 'ERROR', **kwargs):
    """Log an error with its type and message as structured fields."""
    log_with_fields(logger, level, message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    })
