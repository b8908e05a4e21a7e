"""Configuration models using Pydantic."""

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from clinicsend.config.paths import get_system_timezone

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://103.10.54.154:8020/Appointment/Save"
DEFAULT_DOCTOR_CODE = "0164"
DEFAULT_DOCTOR_NAME = (
    "Prof.Dr. Jobaida Sultana , MBBS (DMC), FCPS (Gynae), MS (Gynae)"
)


class ServerConfig(BaseModel):
    """Configuration for the appointment endpoint."""

    url: str = DEFAULT_SERVER_URL
    timeout: float = Field(default=30.0, gt=0)


class RetryConfig(BaseModel):
    """Retry budget for deferred submissions.

    max_retries counts retries after the first attempt, so the default
    allows three attempts in total. The backoff is fixed, not exponential.
    """

    max_retries: int = Field(default=2, ge=0)
    backoff_seconds: float = Field(default=30.0, ge=0)


class ClinicConfig(BaseModel):
    """Doctor identity used when building payloads."""

    doctor_code: str = DEFAULT_DOCTOR_CODE
    doctor_name: str = DEFAULT_DOCTOR_NAME


class ConfigError(Exception):
    """Configuration error."""

    pass


class ClinicSendConfig(BaseModel):
    """Root configuration model."""

    # IANA name used to interpret naive schedule times
    timezone: str = Field(default_factory=get_system_timezone)
    server: ServerConfig = Field(default_factory=ServerConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    clinic: ClinicConfig = Field(default_factory=ClinicConfig)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("invalid_timezone", extra={"config.timezone": value})
            return "UTC"
        return value

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)
