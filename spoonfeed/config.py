"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ── PostgreSQL ─────────────────────────────────────────────────────────
    pg_host: str = "postgres"
    pg_port: int = 5432
    pg_user: str = "spoonfeed"
    pg_password: str = ""
    pg_database: str = "spoonfeed"
    # Full SQLAlchemy URL; wins over the pg_* fields when set
    database_dsn: Optional[str] = None

    @property
    def database_url(self) -> str:
        if self.database_dsn:
            return self.database_dsn
        return (
            f"postgresql+asyncpg://{self.pg_user}:{self.pg_password}"
            f"@{self.pg_host}:{self.pg_port}/{self.pg_database}"
        )

    # ── Redis (refresh-token sessions) ─────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379
    session_ttl: int = 30 * 86400        # refresh tokens live 30 days

    # ── Auth ───────────────────────────────────────────────────────────────
    jwt_secret: str = "change-me-in-production-0123456789abcdef0123456789abcdef"
    jwt_algorithm: str = "HS256"
    access_token_ttl_minutes: int = 60
    password_min_length: int = 6

    # ── MinIO (S3-compatible) ──────────────────────────────────────────────
    minio_endpoint: str = "minio:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_bucket: str = "reviews"
    minio_use_ssl: bool = False
    media_public_url: Optional[str] = None
    image_max_bytes: int = 5 * 1024 * 1024
    video_max_bytes: int = 50 * 1024 * 1024
    audio_max_bytes: int = 10 * 1024 * 1024
    audio_max_seconds: int = 60

    @property
    def media_public_base_url(self) -> str:
        if self.media_public_url:
            return self.media_public_url.rstrip("/")
        scheme = "https" if self.minio_use_ssl else "http"
        return f"{scheme}://{self.minio_endpoint}/{self.minio_bucket}"

    # ── Google Places / Geocoding ──────────────────────────────────────────
    google_maps_api_key: str = ""
    places_base_url: str = "https://places.googleapis.com"
    geocode_base_url: str = "https://maps.googleapis.com"
    places_search_radius_m: float = 5000.0
    places_max_results: int = 20
    places_photo_max_px: int = 400

    # ── Content rules ──────────────────────────────────────────────────────
    review_text_max_length: int = 250
    comment_max_length: int = 280
    list_name_max_length: int = 100
    list_description_max_length: int = 500

    # ── Feed & discovery ───────────────────────────────────────────────────
    feed_page_size: int = 10
    feed_max_page_size: int = 50
    trending_restaurants_days: int = 7
    trending_restaurants_limit: int = 4
    trending_lists_limit: int = 5
    search_limit: int = 20

    # ── Gatekeeping ────────────────────────────────────────────────────────
    gatekeep_window_days: int = 30
    gatekeep_min_reason_length: int = 100

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    tracing_enabled: bool = True
    service_name: str = "spoonfeed-api"
    environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
