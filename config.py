"""
Configuration module for the Recipe Import Pipeline
===================================================

This module centralizes all configuration for the recipe-import resolution
pipeline that talks to the restaurant back-office REST API:
- Recipe parser endpoint (raw text -> draft recipe)
- Unit / ingredient catalog endpoints (list + create)
- Recipe persistence endpoint

CONFIGURATION:
- data/config.yaml: Connection URL and import defaults
- data/secrets.yaml: Credentials (back-office API token)

Usage:
    from config import BACKOFFICE_URL, IMPORT_DEFAULTS, backoffice_rate_limit

SETUP REQUIRED:
    1. Copy config.yaml.example to data/config.yaml (done automatically on first run)
    2. Edit data/config.yaml with your back-office URL and default ids
    3. Set BACKOFFICE_TOKEN (env var or data/secrets.yaml)
"""

import os
import logging
import shutil
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


# =============================================================================
# USER CONFIGURATION LOADING (STRICT - NO FALLBACKS)
# =============================================================================

# Project root directory (where this file lives)
PROJECT_ROOT = Path(__file__).parent

# Data directory - the canonical location for all runtime data
DATA_DIR = Path(os.getenv("RECIPE_IMPORT_DATA_DIR", str(PROJECT_ROOT / "data")))

CONFIG_PATH = DATA_DIR / "config.yaml"
SECRETS_PATH = DATA_DIR / "secrets.yaml"
EXAMPLE_CONFIG_PATH = PROJECT_ROOT / "config.yaml.example"

REQUIRED_SECTIONS = ["connection", "import"]
REQUIRED_FIELDS = [
    ("connection", "backoffice_url"),
    ("import", "default_count_unit_id"),
    ("import", "default_yield_unit_id"),
    ("import", "default_category_id"),
    ("import", "placeholder_name"),
    ("import", "placeholder_description"),
]


def _config_error(title: str, *lines: str) -> str:
    body = "\n".join(lines)
    return f"\n{'='*60}\nERROR: {title}\n{'='*60}\n{body}\n{'='*60}"


def _load_user_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load user configuration from data/config.yaml.

    A missing config is created from config.yaml.example so a first run
    works out of the box. Anything else (bad YAML, missing sections) fails
    immediately.

    Raises:
        FileNotFoundError: If neither config.yaml nor the example exist
        ValueError: If YAML is invalid or missing required fields
    """
    config_path = config_path or CONFIG_PATH

    if not config_path.exists():
        if EXAMPLE_CONFIG_PATH.exists():
            config_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(EXAMPLE_CONFIG_PATH, config_path)
            print(f"[config] Created {config_path} from config.yaml.example")
        else:
            raise FileNotFoundError(_config_error(
                "config.yaml not found",
                f"Expected location: {config_path}",
                f"Also missing: {EXAMPLE_CONFIG_PATH}",
            ))

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(_config_error(
            "config.yaml has invalid YAML syntax",
            f"File: {config_path}",
            f"Error: {e}",
        )) from e

    if config is None:
        raise ValueError(_config_error(
            "config.yaml is empty",
            f"File: {config_path}",
            "Please copy config.yaml.example and customize it.",
        ))

    missing_sections = [s for s in REQUIRED_SECTIONS if s not in config]
    if missing_sections:
        raise ValueError(_config_error(
            "config.yaml missing required sections",
            f"Missing: {missing_sections}",
            f"Required sections: {REQUIRED_SECTIONS}",
        ))

    missing_fields = [
        f"{section}.{field}"
        for section, field in REQUIRED_FIELDS
        if field not in (config.get(section) or {})
    ]
    if missing_fields:
        raise ValueError(_config_error(
            "config.yaml missing required fields",
            f"Missing: {missing_fields}",
        ))

    return config


# Load user config at module initialization (FAIL FAST)
USER_CONFIG = _load_user_config()

# Use standard logging for config.py (foundational module)
logger = logging.getLogger(__name__)


# =============================================================================
# SECRETS
# =============================================================================
"""
Credential storage in data/secrets.yaml.
Environment variables take priority over file-based secrets.
"""


def load_secrets() -> Dict[str, Any]:
    """
    Load secrets from data/secrets.yaml.

    Returns:
        dict with key 'backoffice_token' (may be None).
        Returns empty dict if file doesn't exist.
    """
    if not SECRETS_PATH.exists():
        return {}

    try:
        with open(SECRETS_PATH, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"⚠️ Failed to load secrets from {SECRETS_PATH}: {e}")
        return {}

    return {
        'backoffice_token': (data.get('backoffice') or {}).get('token'),
    }


def load_backoffice_token() -> Optional[str]:
    """
    Load BACKOFFICE_TOKEN from environment variable or secrets file.

    Priority order:
    1. Environment variable BACKOFFICE_TOKEN
    2. File: data/secrets.yaml

    Returns:
        str: The bearer token if found, None otherwise
    """
    env_token = os.getenv("BACKOFFICE_TOKEN", "").strip()
    if env_token:
        logger.debug(f"🔑 Using BACKOFFICE_TOKEN from env var (length: {len(env_token)})")
        return env_token

    file_token = load_secrets().get('backoffice_token')
    if file_token:
        logger.debug(f"🔑 Using BACKOFFICE_TOKEN from {SECRETS_PATH} (length: {len(file_token)})")
        return file_token

    # The parser/catalog endpoints are public in single-tenant deployments
    logger.debug("No BACKOFFICE_TOKEN found in env var or data/secrets.yaml")
    return None


# =============================================================================
# BACK-OFFICE CONNECTION
# =============================================================================

BACKOFFICE_URL = os.getenv("BACKOFFICE_URL", USER_CONFIG["connection"]["backoffice_url"]).rstrip('/')
BACKOFFICE_TOKEN = load_backoffice_token()
BACKOFFICE_TIMEOUT = USER_CONFIG["connection"].get("timeout", 30)  # seconds


def _get_max_concurrent() -> int:
    """Max concurrent back-office requests (connection.max_concurrent_requests, default 4)."""
    value = USER_CONFIG["connection"].get("max_concurrent_requests", 4)
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        logger.warning(f"⚠️ Invalid connection.max_concurrent_requests={value!r}, using 4")
        return 4


BACKOFFICE_MAX_CONCURRENT_REQUESTS = _get_max_concurrent()

_backoffice_semaphore = threading.Semaphore(BACKOFFICE_MAX_CONCURRENT_REQUESTS)


@contextmanager
def backoffice_rate_limit():
    """
    Context manager to limit concurrent back-office API requests.

    Usage:
        with backoffice_rate_limit():
            response = session.get(...)
    """
    _backoffice_semaphore.acquire()
    try:
        yield
    finally:
        _backoffice_semaphore.release()


def get_backoffice_headers() -> dict:
    """Headers sent with every back-office request."""
    headers = {"Content-Type": "application/json"}
    if BACKOFFICE_TOKEN:
        headers["Authorization"] = f"Bearer {BACKOFFICE_TOKEN}"
    return headers


# =============================================================================
# IMPORT DEFAULTS
# =============================================================================
"""
Ids of seeded back-office rows the pipeline falls back to, and the
identity of the shared text-only ingredient.
"""

IMPORT_DEFAULTS = {
    # Countable unit used when a line's unit cannot be created
    "default_count_unit_id": USER_CONFIG["import"]["default_count_unit_id"],
    # Seeded "serving" unit used for the recipe yield
    "default_yield_unit_id": USER_CONFIG["import"]["default_yield_unit_id"],
    # Seeded "Uncategorized" recipe category
    "default_category_id": USER_CONFIG["import"]["default_category_id"],
    "placeholder_name": USER_CONFIG["import"]["placeholder_name"],
    "placeholder_description": USER_CONFIG["import"]["placeholder_description"],
}


# =============================================================================
# LOGGING
# =============================================================================

LOG_DIR = DATA_DIR / "logs"

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "standard",
            "stream": "ext://sys.stdout"
        },
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filename": str(LOG_DIR / "recipe_import.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5
        }
    },
    "root": {
        "level": "DEBUG",
        "handlers": ["console", "file"]
    }
}
