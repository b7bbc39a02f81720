"""Configuration loading, saving, defaults, and application paths."""

import json
import logging
import os

logger = logging.getLogger(__name__)


def _config_dir():
    override = os.environ.get("SSHHOP_CONFIG_DIR", "")
    if override:
        return os.path.expanduser(override)
    base = os.environ.get("XDG_CONFIG_HOME", "") or os.path.expanduser("~/.config")
    return os.path.join(base, "sshhop")


CONFIG_DIR = _config_dir()
CONFIG_PATH = os.path.join(CONFIG_DIR, "config.json")
HISTORY_PATH = os.path.join(CONFIG_DIR, "sshhop_history.json")
LOG_PATH = os.path.join(CONFIG_DIR, "sshhop.log")

# Where history lived before it moved into the config directory
LEGACY_HISTORY_PATH = os.path.expanduser("~/.ssh/sshhop_history.json")

DEFAULT_CONFIG = {
    # SSH
    "ssh_config_file": "",
    "copy_tool": "scp",
    "connect_timeout": 10,
    # Remote browser
    "show_hidden": False,
    "search_limit": 30,
    "search_max_depth": 5,
    "search_timeout": 3,
    # Host menu
    "host_sort": "last_used",
    # Appearance
    "accent_color": "#5f9ea0",
    # Misc
    "notifications": True,
    "log_level": "INFO",
}

HOST_SORT_MODES = ("last_used", "most_used", "name")


def ensure_config_dir():
    os.makedirs(CONFIG_DIR, mode=0o755, exist_ok=True)


def load_config(path=None):
    path = path or CONFIG_PATH
    if os.path.exists(path):
        try:
            with open(path, "r") as f:
                cfg = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Config %s unreadable (%s), resetting to defaults", path, e)
            cfg = None
        if isinstance(cfg, dict):
            for k, v in DEFAULT_CONFIG.items():
                cfg.setdefault(k, v)
            if cfg.get("host_sort") not in HOST_SORT_MODES:
                cfg["host_sort"] = DEFAULT_CONFIG["host_sort"]
            return cfg
    cfg = dict(DEFAULT_CONFIG)
    save_config(cfg, path)
    return cfg


def save_config(cfg, path=None):
    path = path or CONFIG_PATH
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        json.dump(cfg, f, indent=2)


def ssh_config_file():
    """Return the SSH config file override, expanded, or an empty string."""
    value = CFG.get("ssh_config_file", "") or ""
    return os.path.expanduser(value) if value else ""


CFG = load_config()
