"""Application settings using pydantic-settings.

Settings are loaded from environment variables with sensible defaults
for development. Production deployments should set all values explicitly.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PREFIX_PATTERN = r"^[_A-Za-z][_0-9A-Za-z]*$"


class GatewaySettings(BaseSettings):
    """HTTP gateway settings.

    Environment variables:
        GATEWAY_HOST: Interface to bind (default: 0.0.0.0)
        GATEWAY_PORT or PORT: Listening port (default: 4000)
        GATEWAY_GRAPHIQL: Serve the GraphiQL UI on GET /graphql (default: true)
        GATEWAY_DEBUG: Enable the /util development routes (default: false)
        GATEWAY_LOG_LEVEL: Minimum log level (default: INFO)
        GATEWAY_REQUEST_TIMEOUT_SECONDS: Upper bound for one client operation
            (default: 30)
    """

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="Storefront Gateway", description="Application name")
    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(
        default=4000,
        description="Listening port",
        validation_alias=AliasChoices("GATEWAY_PORT", "PORT", "port"),
        ge=1,
        le=65535,
    )
    graphiql: bool = Field(default=True, description="Serve the GraphiQL UI")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Minimum log level")
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound for executing one client operation",
        gt=0,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Normalize and check the log level name."""
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level


class UpstreamSettings(BaseSettings):
    """Settings for the two stitched GraphQL services.

    Environment variables:
        GATEWAY_UPSTREAM_CART_URL: Cart service endpoint
        GATEWAY_UPSTREAM_CART_PREFIX: Namespace prefix for the cart schema
            (default: CartQL_)
        GATEWAY_UPSTREAM_CART_SNAPSHOT_PATH: Cart schema snapshot
            (default: bundled snapshot)
        GATEWAY_UPSTREAM_CMS_URL: Content service endpoint
        GATEWAY_UPSTREAM_CMS_PREFIX: Namespace prefix for the content schema
            (default: CMS_)
        GATEWAY_UPSTREAM_CMS_SNAPSHOT_PATH: Content schema snapshot
            (default: bundled snapshot)
        GATEWAY_UPSTREAM_TIMEOUT_SECONDS: Timeout for one upstream call (default: 10)
    """

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_UPSTREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    cart_url: str = Field(
        default="https://api.cartql.com/",
        description="Cart service endpoint",
        min_length=1,
    )
    cart_prefix: str = Field(
        default="CartQL_",
        description="Namespace prefix for the cart schema",
        pattern=_PREFIX_PATTERN,
    )
    cart_snapshot_path: Path | None = Field(
        default=None,
        description="Cart schema snapshot (bundled snapshot when unset)",
    )
    cms_url: str = Field(
        default="https://api-eu-central-1.graphcms.com/v2/ckrvra12f06pb01z82dn2ebd4/master",
        description="Content service endpoint",
        min_length=1,
    )
    cms_prefix: str = Field(
        default="CMS_",
        description="Namespace prefix for the content schema",
        pattern=_PREFIX_PATTERN,
    )
    cms_snapshot_path: Path | None = Field(
        default=None,
        description="Content schema snapshot (bundled snapshot when unset)",
    )
    timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for one upstream call",
        gt=0,
    )

    @model_validator(mode="after")
    def validate_prefixes_disjoint(self) -> "UpstreamSettings":
        """Neither prefix may start with the other, or renamed names could collide."""
        if self.cart_prefix.startswith(self.cms_prefix) or self.cms_prefix.startswith(
            self.cart_prefix
        ):
            raise ValueError(
                f"cart_prefix ({self.cart_prefix!r}) and cms_prefix "
                f"({self.cms_prefix!r}) must not be prefixes of each other"
            )
        return self


@lru_cache
def get_settings() -> GatewaySettings:
    """Get cached gateway settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return GatewaySettings()


@lru_cache
def get_upstream_settings() -> UpstreamSettings:
    """Get cached upstream settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return UpstreamSettings()
