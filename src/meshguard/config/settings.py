"""
Application settings using Pydantic.

Provides environment-based configuration loading with MESHGUARD_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Telemetry window
    window_capacity: int = 1000
    metrics_sample_size: int = 100

    # Detection
    analysis_window: int = 200
    detection_interval_seconds: float = 5.0
    metrics_interval_seconds: float = 2.0
    baseline_file: str | None = None

    # Drafting
    auto_draft: bool = True
    default_namespace: str = "default"
    system_author: str = "system"

    # Synthetic traffic
    synthetic_enabled: bool = False
    synthetic_interval_seconds: float = 1.0
    synthetic_burst_size: int = 10
    synthetic_suspicious_ratio: float = 0.05

    # Cluster
    cluster_backend: str = "memory"  # memory, kubernetes
    kubeconfig: str | None = None
    kube_context: str | None = None

    # Notifications
    webhook_url: str | None = None
    webhook_token: str | None = None
    broadcast_queue_size: int = 1000

    # API
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = []
    host: str = "127.0.0.1"
    port: int = 8080

    # HTTP client settings
    http_timeout: int = 30
    http_max_retries: int = 3
    http_retry_backoff_factor: float = 0.5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "MESHGUARD_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
