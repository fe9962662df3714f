"""Runtime settings."""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SIGPROXY_", extra="ignore")

    app_name: str = "sigproxy"
    log_level: str = "info"
    # empty: stderr only
    log_file_path: str = ""
    # DEBUG only; False logs method/path/headers + body_size without the body
    log_full_request_body: bool = False
    host: str = "0.0.0.0"
    port: int = Field(default=3000, validation_alias=AliasChoices("PORT", "SIGPROXY_PORT"))

    # Gemini conversations with many tool results can be large.
    max_request_body_bytes: int = 50 * 1024 * 1024
    upstream_timeout_seconds: float = 60.0
    # None leaves reads unbounded; long generations hold the request until the upstream resolves.
    upstream_read_timeout_seconds: float | None = None
    upstream_max_connections: int = 100
    upstream_max_keepalive_connections: int = 20


settings = Settings()
