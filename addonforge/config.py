"""Configuration management using Pydantic Settings."""

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"

    # Matrix staggering (seconds between batches / between runs in a batch)
    STAGGER_DELAY_SECONDS: float = 10.0
    STAGGER_BATCH_SIZE: int = 8
    WITHIN_BATCH_DELAY_SECONDS: float = 2.0

    # Dependency resolution
    FALLBACK_FLAVOR: str = "fully-configurable"

    # Required-input validation
    IGNORED_REQUIRED_INPUTS: str = "ibmcloud_api_key"

    # Report rendering
    REPORT_WIDTH: int = 79

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ADDONFORGE_",
        extra="ignore",
    )

    @property
    def ignored_required_inputs(self) -> list[str]:
        return [k.strip() for k in self.IGNORED_REQUIRED_INPUTS.split(",") if k.strip()]


settings = Settings()
