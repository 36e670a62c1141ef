# lending_tracker/config.py
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database Configuration
    database_url: Optional[str] = Field(None)  # 指定された場合は下記の個別設定より優先
    database_host: str = Field("db")
    database_port: int = Field(5432)
    database_user: str = Field("lending")
    database_password: str = Field("lending_password")
    database_name: str = Field("lending_tracker")
    database_echo: bool = Field(False)

    # JWT Configuration
    secret_key: str = Field("change-me-in-production")
    algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(60)

    # Logging
    log_level: str = Field("INFO")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def sqlalchemy_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.database_user}:"
            f"{self.database_password}@{self.database_host}:"
            f"{self.database_port}/{self.database_name}"
        )


settings = Settings()
