"""Centralized path management for clinicsend.

All state (config, schedule slot, jobs, history, logs) is stored under a
single base directory. The base directory can be overridden with the
CLINICSEND_HOME environment variable.

Default locations:
- Linux/macOS: ~/.clinicsend
- Windows: %USERPROFILE%\\.clinicsend
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "CLINICSEND_HOME"


def get_system_timezone() -> str:
    """Detect system timezone, falling back to UTC.

    Resolution order:
    1. TZ environment variable (if set)
    2. /etc/timezone file (Debian/Ubuntu)
    3. /etc/localtime symlink target (most Linux distros)
    4. Fallback to UTC

    Returns:
        IANA timezone name (e.g., "Asia/Dhaka", "Europe/London", "UTC").
    """
    if tz := os.environ.get("TZ"):
        return tz

    try:
        tz = Path("/etc/timezone").read_text().strip()
        if tz:
            return tz
    except (FileNotFoundError, PermissionError):
        pass

    try:
        link = Path("/etc/localtime").resolve()
        parts = str(link).split("zoneinfo/")
        if len(parts) > 1:
            return parts[1]
    except (FileNotFoundError, PermissionError):
        pass

    return "UTC"


@lru_cache(maxsize=1)
def get_clinicsend_home() -> Path:
    """Get the base directory for all clinicsend data.

    Resolution order:
    1. CLINICSEND_HOME environment variable (if set)
    2. Platform default (~/.clinicsend)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()

    return Path.home() / ".clinicsend"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_clinicsend_home() / "config.toml"


def get_schedule_file() -> Path:
    """Get the single-slot pending schedule file path."""
    return get_clinicsend_home() / "one_time_schedule.txt"


def get_jobs_file() -> Path:
    """Get the deferred job records file path."""
    return get_clinicsend_home() / "jobs.json"


def get_history_file() -> Path:
    """Get the submission history file path.

    The name is kept for compatibility with existing history files even
    though records are " | "-delimited text, not JSON.
    """
    return get_clinicsend_home() / "history.jsonl"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_clinicsend_home() / "logs"


def get_all_paths() -> dict[str, Path]:
    """Get all standard paths for debugging/display."""
    return {
        "home": get_clinicsend_home(),
        "config": get_config_path(),
        "schedule": get_schedule_file(),
        "jobs": get_jobs_file(),
        "history": get_history_file(),
        "logs": get_logs_path(),
    }
