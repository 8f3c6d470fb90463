"""Configuration settings and environment variables.

This module loads values from environment variables (including a .env file)
and provides small helpers to safely parse integers, floats and booleans while
stripping inline comments. This avoids crashes when a .env value contains
an inline comment like:

    KIOSK_API_TIMEOUT_SECONDS=10 # seconds

The helpers fall back to defaults and emit warnings when parsing fails.
"""

import os
import logging
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

_logger = logging.getLogger(__name__)


def _strip_inline_comment(val: str) -> str:
    """Strip an inline comment from a string and trim whitespace/quotes.

    Example: "10 # seconds" -> "10"
    """
    if val is None:
        return ''
    val = val.split('#', 1)[0]
    val = val.strip()
    if (val.startswith('"') and val.endswith('"')) or (
        val.startswith("'") and val.endswith("'")
    ):
        val = val[1:-1]
    return val


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    stripped = _strip_inline_comment(raw)
    return stripped if stripped != '' else default


def _get_int_env(name: str, default: int) -> int:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (ValueError, TypeError):
        _logger.warning("Invalid integer for %s: %r, falling back to %s", name, raw, default)
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (ValueError, TypeError):
        _logger.warning("Invalid number for %s: %r, falling back to %s", name, raw, default)
        return default


def _get_bool_env(name: str, default: bool) -> bool:
    raw = _get_env(name)
    if raw is None:
        return default
    return raw.lower() in ['true', '1', 'on', 'yes']


class Config:
    """Base configuration class with default settings."""

    # Flask settings; SECRET_KEY also signs the kiosk session cookie that
    # carries the registration draft between screens
    SECRET_KEY = _get_env('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SESSION_COOKIE_SAMESITE = 'Lax'

    # MongoDB settings
    MONGO_URI = _get_env('MONGO_URI') or 'mongodb://localhost:27017/'
    MONGO_DB = _get_env('MONGO_DB') or 'kiosk_registrations'
    REGISTRATIONS_COLLECTION = _get_env('REGISTRATIONS_COLLECTION') or 'registrations'
    ENSURE_INDEXES_ON_STARTUP = _get_bool_env('ENSURE_INDEXES_ON_STARTUP', True)

    # Rate limiting
    RATELIMIT_STORAGE_URI = _get_env('RATELIMIT_STORAGE_URL') or 'memory://'
    REGISTRATION_RATE_LIMIT = _get_env('REGISTRATION_RATE_LIMIT') or '30 per minute'

    # Kiosk screens: when KIOSK_API_BASE_URL is set the confirmation screen
    # posts to that API over HTTP, otherwise it uses the in-process service
    KIOSK_API_BASE_URL = _get_env('KIOSK_API_BASE_URL')
    KIOSK_API_TIMEOUT_SECONDS = _get_float_env('KIOSK_API_TIMEOUT_SECONDS', 10.0)
    KIOSK_API_MAX_RETRIES = _get_int_env('KIOSK_API_MAX_RETRIES', 2)

    # Shared record of each kiosk draft's submission, so concurrent renders of
    # the confirmation screen submit once; a `submitting` entry older than the
    # stale window is taken over by the next render
    KIOSK_SUBMISSIONS_COLLECTION = _get_env('KIOSK_SUBMISSIONS_COLLECTION') or 'kiosk_submissions'
    KIOSK_SUBMISSION_STALE_SECONDS = _get_int_env('KIOSK_SUBMISSION_STALE_SECONDS', 60)


class DevelopmentConfig(Config):
    """Development configuration with debug mode enabled."""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration with security settings."""
    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = _get_bool_env('SESSION_COOKIE_SECURE', False)


class TestingConfig(Config):
    """Testing configuration with test database."""
    TESTING = True
    MONGO_DB = 'kiosk_registrations_test'
    ENSURE_INDEXES_ON_STARTUP = False
    RATELIMIT_ENABLED = False
    KIOSK_API_BASE_URL = None


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
