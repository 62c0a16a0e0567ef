from pydantic_settings import BaseSettings
from pathlib import Path
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    model_config = {"extra": "ignore", "env_file": ".env", "env_file_encoding": "utf-8"}

    # Database connection. DATABASE_URL wins when set; otherwise the DB_* parts
    # build a MySQL URL, falling back to a local sqlite file for development.
    DATABASE_URL: str | None = None
    DB_HOST: str | None = None
    DB_PORT: int = 3306
    DB_USER: str | None = None
    DB_PASSWORD: str | None = None
    DB_NAME: str | None = None
    DB_POOL_SIZE: int = 10

    PORT: int = 8000

    COUNTRY_API: str = "https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies"
    EXCHANGE_API: str = "https://open.er-api.com/v6/latest/USD"
    FETCH_TIMEOUT_SECONDS: float = 30.0

    # Logging configuration used by country_api.logging
    LOG_LEVEL: str = "INFO"
    CONSOLE_LOG_LEVEL: str = "INFO"
    SLOW_QUERY_THRESHOLD_MS: float = 200

    # Base directory of the project
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    CACHE_DIR: Path | None = None

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.DB_HOST:
            return URL.create(
                "mysql+pymysql",
                username=self.DB_USER,
                password=self.DB_PASSWORD,
                host=self.DB_HOST,
                port=self.DB_PORT,
                database=self.DB_NAME,
            ).render_as_string(hide_password=False)
        return "sqlite:///./dev.db"

    @property
    def cache_dir(self) -> Path:
        return self.CACHE_DIR or (self.BASE_DIR / "cache")


settings = Settings()
