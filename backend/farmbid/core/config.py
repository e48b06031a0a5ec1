from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """FarmBid configuration, read from the environment or a local .env file"""

    APP_NAME: str = "FarmBid Marketplace"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Postgres
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_HOST: str = "127.0.0.1"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "farmbid"

    # Route the async engine through PgBouncer (Alembic always talks to Postgres)
    USE_PGBOUNCER: bool = False
    PGBOUNCER_HOST: str = "127.0.0.1"
    PGBOUNCER_PORT: int = 6432

    # Redis: user cache, auction event channels
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_MAX_CONNECTIONS: int = 50
    USER_CACHE_TTL_SECONDS: int = 60 * 60 * 24

    # Bearer tokens issued by the identity provider
    SECRET_KEY: str = "your-secret-key-change-this-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    BACKEND_CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Auctions
    DEFAULT_MIN_INCREMENT: float = 1.0
    AUCTION_SWEEP_INTERVAL_SECONDS: int = 10
    # When an auction expires, accept the leading bid if it meets the reserve.
    # With this off, expired auctions always close without a winner.
    AUCTION_AUTO_ACCEPT_ON_EXPIRY: bool = True
    EVENT_RELAY_RETRY_SECONDS: int = 5

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    def _postgres_url(self, driver: str, host: str, port: int) -> str:
        return (
            f"{driver}://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{host}:{port}/{self.POSTGRES_DB}"
        )

    @property
    def DATABASE_URL(self) -> str:
        """asyncpg URL for the application engine (via PgBouncer if enabled)"""
        if self.USE_PGBOUNCER:
            return self._postgres_url(
                "postgresql+asyncpg", self.PGBOUNCER_HOST, self.PGBOUNCER_PORT
            )
        return self._postgres_url("postgresql+asyncpg", self.POSTGRES_HOST, self.POSTGRES_PORT)

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """psycopg2 URL for Alembic"""
        return self._postgres_url("postgresql", self.POSTGRES_HOST, self.POSTGRES_PORT)

    @property
    def REDIS_URL(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()
