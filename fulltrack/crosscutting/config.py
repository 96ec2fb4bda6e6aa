import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Any, Optional, Mapping
from urllib.parse import urlparse

from dotenv import dotenv_values


DEFAULT_BACKEND_URL = 'http://localhost:8000'
DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_WORKERS = 8
LOG_FORMATS = ('json', 'text')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

# Checked in order; the last two keep compatibility with deployments of the web frontend
BACKEND_URL_VARS = ('FULLTRACK_BACKEND_URL', 'BACKEND_URL', 'VITE_BACKEND_URL')


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the client."""

    backend_url: str = DEFAULT_BACKEND_URL
    timeout: float = DEFAULT_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS
    log_level: str = 'INFO'
    log_format: str = 'json'

    def __post_init__(self):
        object.__setattr__(self, 'backend_url', normalize_backend_url(self.backend_url))
        if self.timeout <= 0:
            raise ConfigError(f"Timeout must be positive, got {self.timeout}")
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.log_format not in LOG_FORMATS:
            raise ConfigError(f"Unknown log format {self.log_format!r}, expected one of {LOG_FORMATS}")
        object.__setattr__(self, 'log_level', self.log_level.upper())
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"Unknown log level {self.log_level!r}, expected one of {LOG_LEVELS}")

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    def summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        return {
            'backend_url': self.backend_url,
            'timeout': self.timeout,
            'max_workers': self.max_workers,
            'log_level': self.log_level,
            'log_format': self.log_format,
        }


def normalize_backend_url(url: str) -> str:
    """Validate a backend base URL and strip trailing slashes."""
    if not url or not url.strip():
        raise ConfigError("Backend URL must not be empty")
    url = url.strip().rstrip('/')
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ConfigError(f"Backend URL must be an absolute http(s) URL, got {url!r}")
    return url


def _parse_number(env: Mapping[str, str], key: str, default, cast):
    raw = env.get(key)
    if raw is None or not str(raw).strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None,
                  env_file: Optional[str] = '.env') -> Settings:
    """Load settings from a .env file and the process environment.

    Process environment wins over the .env file. Passing ``env`` skips both and
    reads only the given mapping.
    """
    if env is None:
        merged: Dict[str, str] = {}
        if env_file and Path(env_file).exists():
            merged.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
        merged.update(os.environ)
        env = merged

    backend_url = DEFAULT_BACKEND_URL
    for key in BACKEND_URL_VARS:
        value = env.get(key)
        if value and value.strip():
            backend_url = value
            break

    return Settings(
        backend_url=backend_url,
        timeout=_parse_number(env, 'FULLTRACK_TIMEOUT', DEFAULT_TIMEOUT, float),
        max_workers=_parse_number(env, 'FULLTRACK_MAX_WORKERS', DEFAULT_MAX_WORKERS, int),
        log_level=env.get('FULLTRACK_LOG_LEVEL') or 'INFO',
        log_format=(env.get('FULLTRACK_LOG_FORMAT') or 'json').lower(),
    )
