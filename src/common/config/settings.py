from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PackerSettings(BaseSettings):
    """Configuration settings for column packing runs."""

    DATABASE_URL: Optional[str] = None
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "postgres"

    PACKER_DUMP_ENCODING: str = "utf-8"
    PACKER_LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(case_sensitive=True)

    @model_validator(mode="after")
    def build_database_url(self) -> "PackerSettings":
        """Build DATABASE_URL from its parts if not provided."""
        if not self.DATABASE_URL:
            self.DATABASE_URL = (
                f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
                f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            )
        return self
