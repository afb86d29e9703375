import os
from datetime import timedelta
from typing import Any
from urllib.parse import urljoin

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationInfo, field_validator

load_dotenv()


class Settings(BaseModel):
    # HTTP server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")

    # Upstream API
    base_url: str = Field(
        default="https://api.stockholmparkering.se", alias="SP_BASE_URL"
    )
    facilities_path: str = Field(default="/facilities", alias="SP_FACILITIES_PATH")
    availability_path: str = Field(
        default="/availability", alias="SP_AVAILABILITY_PATH"
    )

    # Timeouts and cache lifetimes (milliseconds)
    request_timeout_ms: int = Field(default=3000, alias="REQUEST_TIMEOUT_MS")
    availability_ttl_ms: int = Field(default=60 * 1000, alias="AVAILABILITY_TTL_MS")
    facilities_ttl_ms: int = Field(
        default=24 * 60 * 60 * 1000, alias="FACILITIES_TTL_MS"
    )
    overall_timeout_ms: int = Field(default=8000, alias="OVERALL_TIMEOUT_MS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    model_config = {"populate_by_name": True}

    @field_validator(
        "host",
        "base_url",
        "facilities_path",
        "availability_path",
        "log_level",
        "log_json",
        mode="before",
    )
    @classmethod
    def _blank_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return cls.model_fields[info.field_name].default
        return value

    @field_validator(
        "port",
        "request_timeout_ms",
        "availability_ttl_ms",
        "facilities_ttl_ms",
        "overall_timeout_ms",
        mode="before",
    )
    @classmethod
    def _parse_int_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        """Unparseable integers fall back to the default instead of failing."""
        if isinstance(value, str):
            try:
                return int(value.strip(), 10)
            except ValueError:
                return cls.model_fields[info.field_name].default
        return value

    @property
    def facilities_url(self) -> str:
        return build_url(self.base_url, self.facilities_path)

    @property
    def availability_url(self) -> str:
        return build_url(self.base_url, self.availability_path)

    @property
    def request_timeout(self) -> float:
        """Per-attempt upstream timeout in seconds."""
        return self.request_timeout_ms / 1000

    @property
    def overall_timeout(self) -> float:
        """Deadline for a whole recommendation request in seconds."""
        return self.overall_timeout_ms / 1000

    @property
    def availability_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.availability_ttl_ms)

    @property
    def facilities_ttl(self) -> timedelta:
        return timedelta(milliseconds=self.facilities_ttl_ms)


def build_url(base_url: str, path: str) -> str:
    """Resolve ``path`` against ``base_url`` the way a browser would."""
    url = urljoin(base_url, path)
    if not url.startswith(("http://", "https://")):
        raise ValueError(
            f"Failed to construct URL from base '{base_url}' and path '{path}'"
        )
    return url


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Build settings from the process environment (or a given mapping)."""
    return Settings.model_validate(dict(os.environ if environ is None else environ))


global_settings = load_settings()
