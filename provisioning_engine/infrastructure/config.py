#provisioning_engine\infrastructure\config.py

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class PlannerSettings(BaseSettings):
    """Planner configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PLANNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = "INFO"

    # Wiring
    filesystem_port: int = 2049
    secret_name_template: str = "{stack_id}/{node_id}/credentials"
    reject_public_bypass: bool = False

    # External provisioning executor
    executor_url: Optional[str] = None
    executor_timeout: int = 30


settings = PlannerSettings()
