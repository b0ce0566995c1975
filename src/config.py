"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables (or the host's decoded settings mapping)
  into strongly-typed Pydantic models.
- Validating required destination fields and providing actionable error messages.
"""

import os
from collections.abc import Mapping
from typing import Any, Literal, TypeVar

import dotenv
from pydantic import BaseModel, Field, field_validator

from influx_write.models import WriteParams

_T = TypeVar("_T", int, float)

Consistency = Literal["any", "one", "quorum", "all"]


def _get_required_env(name: str) -> str:
    """Read a required env var or raise a helpful error."""
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"{name} is required. Please set it in your .env file.")
    if value.startswith("your_") and value.endswith("_here"):
        raise ValueError(f"{name} is required. Please replace the placeholder value in your .env file.")
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


def _get_env_optional(name: str) -> str | None:
    """Read an optional string env var (empty means unset)."""
    value = os.getenv(name, "").strip()
    return value or None


def _get_env_tags(name: str) -> dict[str, str]:
    """Read a `key=value,key=value` tag map from an env var."""
    raw = os.getenv(name, "").strip()
    tags: dict[str, str] = {}
    if not raw:
        return tags
    for pair in raw.split(","):
        if not pair.strip():
            continue
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"{name} must look like 'key=value,key=value'. Got: {raw!r}")
        tags[key.strip()] = value.strip()
    return tags


class InfluxDBConfig(BaseModel):
    """Destination and buffering configuration for one handler."""

    handler_name: str = Field(default="influxdb-events", description="Name used in logs and User-Agent")

    # Destination
    hostname: str = Field(..., description="InfluxDB host")
    port: int = Field(default=8086, description="InfluxDB HTTP port")
    user: str | None = Field(default=None, description="Basic auth user")
    passwd: str | None = Field(default=None, description="Basic auth password")
    db: str = Field(..., description="Destination database")
    retention_policy: str | None = Field(default=None, description="Destination retention policy")
    consistency: Consistency | None = Field(default=None, description="Write consistency level")
    ssl: bool = Field(default=False, description="Use https")
    ssl_cert: str | None = Field(default=None, description="CA bundle used to verify the server")
    source: str = Field(default="sensu", description="Value of the injected `source` tag")
    tags: dict[str, Any] = Field(default_factory=dict, description="Global tags (lowest precedence)")

    # HTTP
    http_compression: bool = Field(default=True, description="Gzip request bodies")
    http_timeout: float = Field(default=15, description="Round-trip timeout (seconds)")

    # Buffering / retry
    buffer_size: int = Field(default=5125, description="Flush once this many units are buffered")
    buffer_max_age: int = Field(default=300, description="Flush once the buffer is this old (seconds)")
    buffer_max_try: int = Field(default=6, description="Failed attempts before the buffer is dropped")
    buffer_max_try_delay: int = Field(default=120, description="Wait after a failed attempt (seconds)")

    @property
    def scheme(self) -> str:
        """URL scheme derived from `ssl`."""
        return "https" if self.ssl else "http"

    @property
    def write_url(self) -> str:
        """Write endpoint without the query string."""
        return f"{self.scheme}://{self.hostname}:{self.port}/write"

    def default_write_params(self, precision: str = "s") -> WriteParams:
        """Write parameters used when a record does not override them."""
        return WriteParams(
            db=self.db,
            rp=self.retention_policy,
            consistency=self.consistency,
            precision=precision,
            user=self.user,
            passwd=self.passwd,
        )

    @field_validator("consistency", mode="before")
    def normalize_consistency(cls, v: Any) -> Any:
        """Accept `ALL`, `Quorum`, ... as well as the lower-case levels."""
        if isinstance(v, str):
            return v.strip().lower() or None
        return v

    @field_validator("hostname", "db")
    def validate_required(cls, v: str, info) -> str:
        """Required destination settings must be non-empty."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} is required")
        return v.strip()

    @field_validator("port", "buffer_size", "buffer_max_age")
    def validate_positive_int(cls, v: int, info) -> int:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0. Got: {v}")
        return v

    @field_validator("buffer_max_try", "buffer_max_try_delay")
    def validate_non_negative_int(cls, v: int, info) -> int:
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0. Got: {v}")
        return v

    @field_validator("http_timeout")
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"http_timeout must be > 0. Got: {v}")
        return v

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any], name: str) -> "InfluxDBConfig":
        """Build a config from the host's decoded settings, keyed by handler name.

        Raises `ValueError` when the section or a required destination
        setting is missing, so the handler never initializes half-configured.
        """
        section = settings.get(name)
        if section is None:
            raise ValueError(f"No configuration for {name} provided.")
        for required in ("hostname", "db"):
            if section.get(required) is None:
                raise ValueError(
                    f"Required setting {required} not provided; "
                    f"it should be provided as a json element with key '{name}'."
                )
        data = {k: v for k, v in section.items() if v is not None}
        data["handler_name"] = name
        return cls.model_validate(data)


class Config(BaseModel):
    """Top-level application configuration."""

    influxdb: InfluxDBConfig = Field(..., description="InfluxDB configuration")


def load_config(handler_name: str = "influxdb-events") -> Config:
    """Load application configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when required configuration is
      missing or still contains placeholder values.
    """
    # Load variables from `.env` into the process environment (without overriding
    # already-set env vars).
    dotenv.load_dotenv()

    influxdb = InfluxDBConfig(
        handler_name=handler_name,
        hostname=_get_required_env("INFLUXDB_HOSTNAME"),
        port=_get_env_number("INFLUXDB_PORT", 8086, int),
        user=_get_env_optional("INFLUXDB_USER"),
        passwd=_get_env_optional("INFLUXDB_PASSWD"),
        db=_get_required_env("INFLUXDB_DB"),
        retention_policy=_get_env_optional("INFLUXDB_RETENTION_POLICY"),
        consistency=_get_env_optional("INFLUXDB_CONSISTENCY"),
        ssl=_get_env_bool("INFLUXDB_SSL", False),
        ssl_cert=_get_env_optional("INFLUXDB_SSL_CERT"),
        source=_get_env_optional("INFLUXDB_SOURCE") or "sensu",
        tags=_get_env_tags("INFLUXDB_TAGS"),
        http_compression=_get_env_bool("INFLUXDB_HTTP_COMPRESSION", True),
        http_timeout=_get_env_number("INFLUXDB_HTTP_TIMEOUT", 15.0, float),
        buffer_size=_get_env_number("INFLUXDB_BUFFER_SIZE", 5125, int),
        buffer_max_age=_get_env_number("INFLUXDB_BUFFER_MAX_AGE", 300, int),
        buffer_max_try=_get_env_number("INFLUXDB_BUFFER_MAX_TRY", 6, int),
        buffer_max_try_delay=_get_env_number("INFLUXDB_BUFFER_MAX_TRY_DELAY", 120, int),
    )
    return Config(influxdb=influxdb)
