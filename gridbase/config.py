from typing import Literal, Optional

from pydantic import computed_field, model_validator
from pydantic_core import MultiHostUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_ignore_empty=True, extra="ignore"
    )
    PROJECT_NAME: str = "Gridbase"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    # Which backend get_adapter() builds
    BACKEND: Literal["memory", "sql", "remote"] = "memory"

    # Database configuration - defaults to SQLite for easy setup
    # Set POSTGRES_SERVER to use PostgreSQL instead
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "app"
    POSTGRES_PASSWORD: str = "changethis"
    POSTGRES_DB: str = "app"

    # SQLite database path (used when POSTGRES_SERVER is not set)
    SQLITE_DB_PATH: str = "gridbase.db"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """
        Returns the database URI. Uses SQLite by default for easy setup.
        Set POSTGRES_SERVER environment variable to use PostgreSQL instead.
        """
        if self.POSTGRES_SERVER:
            return str(
                MultiHostUrl.build(
                    scheme="postgresql+psycopg",
                    username=self.POSTGRES_USER,
                    password=self.POSTGRES_PASSWORD,
                    host=self.POSTGRES_SERVER,
                    port=self.POSTGRES_PORT,
                    path=self.POSTGRES_DB,
                )
            )
        return f"sqlite:///{self.SQLITE_DB_PATH}"

    # Remote backend
    REMOTE_BASE_URL: Optional[str] = None
    REMOTE_API_KEY: Optional[str] = None
    REMOTE_TIMEOUT: float = 30.0

    # Query and schema defaults
    DEFAULT_PAGE_LIMIT: int = 50
    MAX_PAGE_LIMIT: int = 1000
    DEFAULT_COLUMN_WIDTH: int = 200

    @model_validator(mode="after")
    def _check_remote_backend(self) -> Self:
        if self.BACKEND == "remote" and not self.REMOTE_BASE_URL:
            raise ValueError("REMOTE_BASE_URL is required when BACKEND is 'remote'")
        return self

    @model_validator(mode="after")
    def _check_page_limits(self) -> Self:
        if self.DEFAULT_PAGE_LIMIT > self.MAX_PAGE_LIMIT:
            raise ValueError("DEFAULT_PAGE_LIMIT cannot exceed MAX_PAGE_LIMIT")
        return self


settings = Settings()  # type: ignore
