"""Gateway configuration.

Environment profiles map an environment name to the local port the tunnel
prefers and the database host behind the bastion. Everything else describes
how the ``tsh`` client is invoked and the timing heuristics of the tunnel
lifecycle. All fields can be overridden with ``TSH_GATEWAY_`` environment
variables.
"""

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentProfile(BaseModel):
    """Static tunnel target for one deployment environment."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="forbid")

    default_local_port: int = Field(
        ge=1, le=65535, description="Preferred local port for the tunnel"
    )
    remote_host: str = Field(min_length=1, description="Database host behind the bastion")


def default_environments() -> dict[str, EnvironmentProfile]:
    return {
        "sit": EnvironmentProfile(
            default_local_port=4085,
            remote_host="cdx-sit2-crs-tidb.int-np.cardx.co.th",
        ),
        "uat1": EnvironmentProfile(
            default_local_port=4023,
            remote_host="cdx-uat-crs-tidb.int-np.cardx.co.th",
        ),
        "uat2": EnvironmentProfile(
            default_local_port=4022,
            remote_host="cdx-uat2-crs-tidb.int-np.cardx.co.th",
        ),
    }


class GatewaySettings(BaseSettings):
    """Settings for the control server and the tunnel it manages."""

    model_config = SettingsConfigDict(
        env_prefix="TSH_GATEWAY_",
        frozen=True,
        extra="ignore",
    )

    tsh_binary: str = Field(default="tsh", min_length=1)
    teleport_proxy: str = Field(default="cardx.teleport.sh:443", min_length=1)
    teleport_user: str | None = Field(
        default=None, description="Teleport user passed to the login command"
    )
    login_auth: str = Field(default="local", description="Auth connector for login")
    sso_auth: str = Field(default="sso", description="Auth connector for SSO login")
    bastion: str = Field(
        default="devops@cdx-sit-nonprod-pci-acn-bastion-host",
        min_length=1,
        description="user@node the tunnel is opened through",
    )
    remote_port: int = Field(default=4000, ge=1, le=65535)

    port_scan_count: int = Field(default=50, ge=0, le=1000)
    confirm_delay: float = Field(
        default=2.0, gt=0, le=60.0, description="Seconds a new tunnel must survive"
    )
    probe_timeout: float = Field(default=1.5, gt=0, le=30.0)
    keepalive_interval: float = Field(default=25.0, gt=0, le=300.0)

    log_level: str = Field(default="INFO")
    json_logs: bool = False

    environments: dict[str, EnvironmentProfile] = Field(
        default_factory=default_environments
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate logging level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("environments")
    @classmethod
    def validate_environments(
        cls, v: dict[str, EnvironmentProfile]
    ) -> dict[str, EnvironmentProfile]:
        """Require at least one environment with a usable name."""
        if not v:
            raise ValueError("At least one environment profile is required")
        for name in v:
            if not name or not name.replace("-", "").replace("_", "").isalnum():
                raise ValueError(
                    f"Environment name '{name}' must contain only alphanumeric "
                    "characters, hyphens, and underscores"
                )
        return v

    def get_profile(self, environment: str) -> EnvironmentProfile | None:
        return self.environments.get(environment)

    def with_profiles_file(self, path: str | Path) -> "GatewaySettings":
        """Return a copy whose environment table is read from a TOML file.

        The file holds one table per environment::

            [environments.sit]
            default_local_port = 4085
            remote_host = "db.internal"
        """
        data = load_profiles_file(path)
        values: dict[str, Any] = self.model_dump()
        values["environments"] = data
        return type(self).model_validate(values)


def load_profiles_file(path: str | Path) -> dict[str, EnvironmentProfile]:
    """Read environment profiles from a TOML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file has no ``environments`` table or a profile is invalid
    """
    with open(path, "rb") as f:
        document = tomllib.load(f)

    table = document.get("environments")
    if not isinstance(table, dict) or not table:
        raise ValueError(f"No [environments] table found in {path}")

    return {
        name: EnvironmentProfile.model_validate(profile)
        for name, profile in table.items()
    }
