from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BeforeValidator, Field, HttpUrl, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

_TRUTHY = ("1", "true", "yes", "on")
_ENVIRONMENTS = ("local", "staging", "production")


class ProductTypeEnum(str, Enum):
    """Supported database product types (postgres, mysql)."""

    POSTGRES = "postgres"
    MYSQL = "mysql"


_DRIVERS = {
    ProductTypeEnum.POSTGRES: ("postgresql+psycopg", 5432),
    ProductTypeEnum.MYSQL: ("mysql+pymysql", 3306),
}


def parse_flag(v: Any) -> bool:
    """Lenient boolean: anything that is not an explicit yes is False."""
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in _TRUTHY


def parse_environment(v: Any) -> str:
    env = str(v).strip().lower()
    return env if env in _ENVIRONMENTS else "local"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )
    PROJECT_NAME: str = "resilientdb"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Annotated[
        Literal["local", "staging", "production"], BeforeValidator(parse_environment)
    ] = "local"
    # Serverless / managed hosting (e.g. VERCEL=1) gets larger pool bounds in production
    MANAGED_PLATFORM: Annotated[bool, BeforeValidator(parse_flag)] = Field(
        default=False, validation_alias=AliasChoices("MANAGED_PLATFORM", "VERCEL")
    )
    # No raw database access from edge runtimes: an unsupported client is used instead
    EDGE_RUNTIME: Annotated[bool, BeforeValidator(parse_flag)] = False
    SENTRY_DSN: HttpUrl | None = None

    DB_PRODUCT_TYPE: ProductTypeEnum = ProductTypeEnum.POSTGRES
    # Full SQLAlchemy URL; when set it wins over the DB_* parts below
    DATABASE_URL: str | None = None
    DB_SERVER: str = "localhost"
    DB_PORT: int | None = None
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_NAME: str = ""
    DB_ECHO: Annotated[bool, BeforeValidator(parse_flag)] = False

    DB_HEALTH_CHECK_INTERVAL: float = 30.0
    DB_HEALTH_PROBE_TIMEOUT: float = 5.0
    DB_HEALTH_FAILURE_THRESHOLD: int = 3
    DB_RECONNECT_ATTEMPTS: int = 3
    DB_MAX_RETRIES: int = 5
    DB_RETRY_BASE_DELAY: float = 1.0
    DB_RETRY_MAX_DELAY: float = 30.0
    DB_SLOW_QUERY_THRESHOLD: float = 5.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        drivername, default_port = _DRIVERS[self.DB_PRODUCT_TYPE]
        return URL.create(
            drivername=drivername,
            username=self.DB_USER,
            password=self.DB_PASSWORD or None,
            host=self.DB_SERVER,
            port=self.DB_PORT or default_port,
            database=self.DB_NAME or None,
        ).render_as_string(hide_password=False)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()  # type: ignore
