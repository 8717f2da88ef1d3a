from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABRICKS_TOKEN: Optional[str] = None
    DATABRICKS_SERVER_HOSTNAME: Optional[str] = None
    DATABRICKS_HTTP_PATH: Optional[str] = None

    # catalog.schema.table; auto-discovered when empty
    DATABRICKS_TABLE: Optional[str] = None
    # e.g. "2022-23,2023-24"
    DATABRICKS_POLICY_YEARS: Optional[str] = None
    DATABRICKS_MAX_ROWS: int = 500_000

    LOG_LEVEL: str = "INFO"

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Create a single instance of the settings to use everywhere
settings = Settings()
