"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - Secrets (MONGODB_URI, JWT_SECRET, EMAIL_*) are only ever presence-checked here
    - get_settings() is cached (lru_cache): single instance per process
    - presence_flags() values are exactly "set" or "not set"

Design Decisions:
    - Env var names match the existing hosting config (NODE_ENV, CLIENT_URL, ...)
      so deployments need no renames (ADR: drop-in replacement)
    - Reliability knobs for the Mongo client live here, not in database.py
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

# Order matters: this is the order the health document reports them in.
PRESENCE_CHECKED = (
    "node_env", "mongodb_uri", "jwt_secret",
    "email_user", "email_password", "client_url",
)


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    mongodb_uri: str | None = None
    mongodb_database: str = "auth"
    server_selection_timeout_ms: int = 10_000
    socket_timeout_ms: int = 45_000
    min_pool_size: int = 5
    max_pool_size: int = 10
    max_idle_time_ms: int = 30_000

    # HTTP
    host: str = "0.0.0.0"
    port: int = 5000
    client_url: str | None = None
    max_body_bytes: int = 50 * 1024 * 1024
    api_version: str = "1.0.0"

    # Collaborator secrets (auth router, mailer)
    jwt_secret: str | None = None
    email_user: str | None = None
    email_password: str | None = None

    # Environment
    node_env: str | None = None
    client_build_dir: str = "../client/dist"

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"
    body_log_threshold: int = 100
    error_log_path: str = "/tmp/server-error.log"

    @property
    def is_production(self) -> bool:
        return self.node_env == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [self.client_url] if self.client_url else ["*"]

    def presence_flags(self) -> dict[str, str]:
        """Report which required settings are configured, never their values."""
        return {
            name.upper(): "set" if getattr(self, name) else "not set"
            for name in PRESENCE_CHECKED
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()
