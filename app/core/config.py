"""Runtime settings for the Policy Flow API.

Values come from environment variables (names are the upper-cased field
names). For local work `ENV_FILE` may name a dotenv file to read as well;
deployed environments leave it unset and inject variables directly.
"""

import os
from enum import Enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppEnvironment(str, Enum):
    """Deployment environment."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Validated settings.

    Invalid values fail at import time, before the app starts serving.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "policy-flow-api"
    app_log_level: str = "INFO"

    # Logging, request IDs and Prometheus metrics
    observability_enabled: bool = True
    observability_structured_logs: bool = True
    observability_request_id_header: str = "X-Request-ID"

    # Shared secret for scraping /metrics (X-Metrics-Token header)
    metrics_token: str | None = None

    # Policy backend (stores flows and evaluates policies)
    policy_api_server: str = "http://localhost:8080"
    policy_api_timeout_seconds: float = 10.0

    # Flow payload limits. The path walk has its own step cap
    # (app.compiler.validator.MAX_PATH_STEPS).
    flow_max_nodes: int = 500
    flow_max_edges: int = 1000

    # Comma-separated list of allowed browser origins
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @field_validator("app_env", mode="before")
    @classmethod
    def parse_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Accept the environment name in any case."""
        if isinstance(v, AppEnvironment):
            return v
        allowed = [env.value for env in AppEnvironment]
        normalized = str(v).strip().lower()
        if normalized not in allowed:
            raise ValueError(f"app_env must be one of {allowed}, got '{v}'")
        return AppEnvironment(normalized)

    @field_validator("policy_api_server")
    @classmethod
    def validate_policy_api_server(cls, v: str) -> str:
        """Require an http(s) URL and strip any trailing slash."""
        server = v.strip()
        if not server.startswith(("http://", "https://")):
            raise ValueError(f"policy_api_server must be an http(s) URL, got '{v}'")
        return server.rstrip("/")

    @field_validator("policy_api_timeout_seconds")
    @classmethod
    def validate_policy_api_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("policy_api_timeout_seconds must be positive")
        return v

    @field_validator("flow_max_nodes", "flow_max_edges")
    @classmethod
    def validate_flow_limits(cls, v: int) -> int:
        if v < 1:
            raise ValueError("flow size limits must be at least 1")
        return v

    @model_validator(mode="after")
    def check_production_safety(self) -> "Settings":
        """Refuse to start in production with an open /metrics or localhost CORS."""
        if self.app_env != AppEnvironment.PROD:
            return self

        if self.observability_enabled and not self.metrics_token:
            raise ValueError("METRICS_TOKEN must be set in production")

        local_origins = [
            origin
            for origin in self.cors_origins_list
            if "localhost" in origin or "127.0.0.1" in origin
        ]
        if local_origins:
            raise ValueError(
                f"CORS origins must not contain localhost in production: {', '.join(local_origins)}"
            )

        return self


settings = Settings()
