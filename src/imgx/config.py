"""
Application constants and the optional per-user config file.
"""
import json
import os
from pathlib import Path
from typing import Any, Dict

from loguru import logger

# --- Input contract (accepted types: models.ImageFormat) ---
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB

# Fallback used when a file's format cannot be sniffed from its content
EXTENSION_TO_MIME = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.webp': 'image/webp',
    '.gif': 'image/gif',
}

# --- Live preview ---
DEBOUNCE_MS = 150
MAX_WORKERS = 2

# --- Stage defaults ---
DEFAULT_COMPRESS_QUALITY = 80
MAX_QUALITY = 100

# --- Clamp ranges (option-setting boundary) ---
MAX_DIMENSION = 16384
MAX_ANGLE = 360.0
MAX_SKEW = 45.0
MAX_MULTIPLIER = 2.0
MAX_BLUR = 10.0

# --- Recent images ---
MAX_RECENTS = 10
THUMBNAIL_SIZE = 120
THUMBNAIL_QUALITY = 70

# --- Paths ---
APP_DIR = Path.home() / ".imgx"
CONFIG_FILE = APP_DIR / "config.json"
LOG_FILE = APP_DIR / "logs" / "imgx.log"
RECENTS_FILE = APP_DIR / "recents.json"

USER_CONFIG_DEFAULTS: Dict[str, Any] = {
    'debounce_ms': DEBOUNCE_MS,
    'max_workers': MAX_WORKERS,
    'recents_path': str(RECENTS_FILE),
}


def load_user_config(path: os.PathLike = CONFIG_FILE) -> Dict[str, Any]:
    """
    Read ~/.imgx/config.json on top of the built-in defaults.

    A missing file is normal; an unreadable one is logged and ignored.
    Unknown keys are dropped.
    """
    config = dict(USER_CONFIG_DEFAULTS)
    path = Path(path)
    if not path.exists():
        return config

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read config {path}: {e}")
        return config

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config {path}: top level is not an object")
        return config

    for key in USER_CONFIG_DEFAULTS:
        if key in data:
            config[key] = data[key]

    try:
        config['debounce_ms'] = max(0, int(config['debounce_ms']))
        config['max_workers'] = max(1, int(config['max_workers']))
    except (TypeError, ValueError):
        logger.warning(f"Invalid numeric value in {path}, using defaults")
        config['debounce_ms'] = DEBOUNCE_MS
        config['max_workers'] = MAX_WORKERS

    return config
