"""DocuRight client configuration."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Environment-driven settings for the DocuRight client core."""

    api_base_url: str = "http://localhost:8080/api"
    request_timeout: float = 30.0

    # Token lifecycle (seconds). Backend tokens expire after 60 minutes.
    access_token_ttl: float = 3600.0
    refresh_lead: float = 600.0
    min_refresh_delay: float = 5.0
    refresh_retry_delay: float = 60.0

    # Anonymous usage funnel
    max_free_generations: int = 3

    # Live preview
    preview_debounce_seconds: float = 0.8
    preview_document_type: str = "nda"

    # Storage: memory, file or redis
    storage_backend: str = "file"
    storage_dir: str = ".docuright"
    redis_url: str = "redis://localhost:6379/0"

    log_level: str = "INFO"

    model_config = {"env_prefix": "DOCURIGHT_", "env_file": ".env", "extra": "ignore"}
