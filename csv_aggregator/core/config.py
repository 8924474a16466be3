# core/config.py

"""
Application Configuration
"""

from pydantic_settings import BaseSettings
from typing import List, Literal, Optional


class Settings(BaseSettings):
    app_name: str = "CSV Aggregator API"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # API Settings
    api_prefix: str = "/api/v1"
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Leave unset to disable the X-API-Key check entirely
    api_key: Optional[str] = "demo-api-key-12345"

    # Directory Settings
    upload_dir: str = "uploads"
    result_dir: str = "results"

    # Aggregation Settings
    batch_size: int = 1000
    input_cleanup: Literal["on_success", "always", "never"] = "on_success"

    # Worker Pool Settings
    max_workers: int = 4
    max_queued_jobs: int = 100
    block_when_full: bool = False
    submit_timeout_seconds: Optional[float] = None

    class Config:
        env_prefix = "CSV_AGGREGATOR_"
        case_sensitive = False


settings = Settings()
