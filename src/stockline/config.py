"""Configuration management for Stockline."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Postgres store and image bucket configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    user: str = "postgres"
    password: str = ""
    sslmode: str = "prefer"
    # Public object storage serving product images
    image_base_url: str = "http://localhost:54321/storage/v1/object/public"
    image_bucket: str = "product-images"

    @property
    def conninfo(self) -> str:
        """Get psycopg connection string."""
        parts = [
            f"host={self.host}",
            f"port={self.port}",
            f"dbname={self.database}",
            f"user={self.user}",
            f"sslmode={self.sslmode}",
        ]
        if self.password:
            parts.append(f"password={self.password}")
        return " ".join(parts)


class ScanSettings(BaseSettings):
    """Scan handling and workflow settings."""

    model_config = SettingsConfigDict(
        env_prefix="SCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # A QR tag left in view re-fires many times per second
    debounce_ms: int = 900
    history_limit: int = 3


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    @property
    def store(self) -> StoreSettings:
        """Get store settings."""
        return StoreSettings()

    @property
    def scan(self) -> ScanSettings:
        """Get scan handling settings."""
        return ScanSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
