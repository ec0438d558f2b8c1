from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    api_title: str = Field("User API")
    api_version: str = Field("1.0.0")
    api_prefix: str = Field("/api/v1")
    host: str = Field("0.0.0.0")
    port: int = Field(8080)
    log_level: str = Field("INFO")

    database_url: str | None = Field(None)
    database_echo: bool = Field(False)
    db_type: str = Field("")
    db_host: str = Field("")
    db_port: str = Field("")
    db_user: str = Field("")
    db_password: str = Field("")
    db_name: str = Field("")
    db_sslmode: str = Field("disable")

    jwt_secret: str = Field("secret")
    jwt_algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(60)
    auth_mode: Literal["jwt", "header-shape"] = Field("jwt")
    bcrypt_rounds: int = Field(12, ge=4, le=31)

    cors_allow_origins: str = Field("*")
    rate_limit_enabled: bool = Field(True)
    auth_rate_limit: str = Field("5/minute")

    @property
    def sqlalchemy_url(self) -> str:
        """Resolve the database URL.

        An explicit ``DATABASE_URL`` wins. Otherwise PostgreSQL is used when
        every connection parameter is present, falling back to a local SQLite
        file for development.
        """
        if self.database_url:
            return self.database_url
        params = (self.db_host, self.db_port, self.db_user, self.db_password, self.db_name)
        if self.db_type == "sqlite" or not all(params):
            return f"sqlite:///{self.db_name or 'api.db'}"
        url = URL.create(
            "postgresql+psycopg2",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=int(self.db_port),
            database=self.db_name,
            query={"sslmode": self.db_sslmode},
        )
        return url.render_as_string(hide_password=False)

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]


settings = Settings()
