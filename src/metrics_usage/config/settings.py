"""
Application settings using Pydantic.

Provides environment-based configuration loading with METRICS_USAGE_ prefix.
Values passed at construction (typically read from the YAML config file) are
overridden by environment variables.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

DEFAULT_COLLECTOR_PERIOD = 12 * 60 * 60
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class TLSSettings(BaseModel):
    ca_file: str | None = None
    cert_file: str | None = None
    key_file: str | None = None
    insecure_skip_verify: bool = False

    @model_validator(mode="after")
    def _check_key_pair(self) -> TLSSettings:
        if self.key_file and not self.cert_file:
            raise ValueError("tls_config.key_file requires cert_file")
        return self


class AuthorizationSettings(BaseModel):
    """Authorization header sent as ``<type> <credentials>``."""

    type: str = "Bearer"
    credentials: str


class OAuthSettings(BaseModel):
    """OAuth2 client credentials grant."""

    client_id: str
    client_secret: str
    token_url: str
    scopes: list[str] = []


class HTTPClientSettings(BaseModel):
    """Connection settings for an outbound HTTP API."""

    url: str | None = None
    username: str | None = None
    password: str | None = None
    bearer_token: str | None = None
    authorization: AuthorizationSettings | None = None
    oauth: OAuthSettings | None = None
    tls_config: TLSSettings | None = None
    timeout: float = 30.0

    @model_validator(mode="after")
    def _check_single_auth(self) -> HTTPClientSettings:
        methods = [
            name
            for name, configured in (
                ("basic auth", self.username is not None or self.password is not None),
                ("bearer_token", self.bearer_token is not None),
                ("authorization", self.authorization is not None),
                ("oauth", self.oauth is not None),
            )
            if configured
        ]
        if len(methods) > 1:
            raise ValueError(f"only one authentication method allowed, got {', '.join(methods)}")
        return self


class DatabaseSettings(BaseModel):
    """Settings of the in-memory usage store and its optional snapshot."""

    path: str = "./metrics_usage.json"
    in_memory: bool = True
    flush_period: float = Field(default=300.0, gt=0)
    # number of metric-name batches a metric can be missing before deletion
    threshold: int = Field(default=3, ge=1)
    usage_queue_size: int = Field(default=250, ge=1)
    metrics_queue_size: int = Field(default=10, ge=1)
    # 0 disables the eviction of partial metrics / pending usage
    partial_metric_ttl: int = Field(default=0, ge=0)
    pending_usage_ttl: int = Field(default=0, ge=0)


class CollectorSettings(BaseModel):
    enable: bool = False
    period: float = DEFAULT_COLLECTOR_PERIOD
    http_client: HTTPClientSettings = Field(default_factory=HTTPClientSettings)
    # when set, collected data is pushed to this remote metrics-usage server
    metric_usage_client: HTTPClientSettings | None = None

    @field_validator("period")
    @classmethod
    def _default_period(cls, value: float) -> float:
        return value if value > 0 else DEFAULT_COLLECTOR_PERIOD

    @model_validator(mode="after")
    def _check_urls(self) -> CollectorSettings:
        if not self.enable:
            return self
        if not self.http_client.url:
            raise ValueError("missing URL for an enabled collector")
        if self.metric_usage_client is not None and not self.metric_usage_client.url:
            raise ValueError("missing metrics-usage URL for the remote client")
        return self


class LabelsCollectorSettings(CollectorSettings):
    concurrency: int = Field(default=10, ge=1)


class RulesCollectorSettings(CollectorSettings):
    # link stored in the rule usage instead of the internal Prometheus URL
    public_url: str | None = None
    retry_to_get_rules: int = Field(default=3, ge=1)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="METRICS_USAGE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Debug
    debug: bool = False
    log_level: str = "INFO"

    # API
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = []

    # Store
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    # Query analysis
    expression_engine: str = "promql"

    # Collectors
    metric_collector: CollectorSettings = Field(default_factory=CollectorSettings)
    labels_collector: LabelsCollectorSettings = Field(default_factory=LabelsCollectorSettings)
    rules_collectors: list[RulesCollectorSettings] = []

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, dotenv_settings, init_settings, file_secret_settings


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
