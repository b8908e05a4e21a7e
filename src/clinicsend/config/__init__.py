"""Configuration module."""

from clinicsend.config.loader import get_default_config, load_config
from clinicsend.config.models import (
    ClinicConfig,
    ClinicSendConfig,
    ConfigError,
    RetryConfig,
    ServerConfig,
)
from clinicsend.config.paths import (
    get_clinicsend_home,
    get_config_path,
    get_history_file,
    get_jobs_file,
    get_schedule_file,
)

__all__ = [
    "ClinicConfig",
    "ClinicSendConfig",
    "ConfigError",
    "RetryConfig",
    "ServerConfig",
    "get_clinicsend_home",
    "get_config_path",
    "get_default_config",
    "get_history_file",
    "get_jobs_file",
    "get_schedule_file",
    "load_config",
]
