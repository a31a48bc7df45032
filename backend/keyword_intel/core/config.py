"""Application configuration loaded from environment variables.

All configuration is via environment variables (or a local .env file).
No hardcoded URLs for private services, and no credentials.
Engines and clients take these values as defaults only; anything passed
explicitly to a constructor wins.
"""

from functools import lru_cache

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Keyword Intelligence Pipeline")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # Database (research records)
    database_url: str | None = Field(
        default=None,
        description="Database connection string (postgresql:// or sqlite+aiosqlite://)",
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size")
    db_max_overflow: int = Field(default=10, description="Max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    db_slow_query_threshold_ms: int = Field(
        default=100, description="Threshold for slow query warnings (ms)"
    )

    # Redis (document store)
    redis_url: RedisDsn | None = Field(
        default=None,
        description="Redis connection string for the document store",
    )
    redis_pool_size: int = Field(default=10, description="Redis connection pool size")
    redis_connect_timeout: float = Field(
        default=10.0, description="Redis connection timeout in seconds"
    )
    redis_socket_timeout: float = Field(
        default=5.0, description="Redis socket timeout in seconds"
    )
    redis_key_prefix: str = Field(
        default="kwi", description="Prefix for every document key in Redis"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # Cache
    cache_stale_threshold_days: int = Field(
        default=7, description="Documents older than this many days are stale"
    )

    # Batching
    batch_size: int = Field(default=20, description="Items per provider batch")
    batch_pacing_ms: int = Field(
        default=250, description="Delay between provider batches in milliseconds"
    )

    # SERP provider (Apify Google Search actor)
    apify_api_token: str | None = Field(
        default=None, description="Apify API token"
    )
    apify_actor_id: str | None = Field(
        default=None, description="Apify actor ID for the Google SERP scraper"
    )
    apify_api_url: str = Field(
        default="https://api.apify.com", description="Apify API base URL"
    )
    serp_max_keywords: int = Field(
        default=10, description="Maximum keywords per SERP provider call"
    )
    serp_default_max_results: int = Field(
        default=100, description="Default organic results per page"
    )
    serp_timeout: float = Field(
        default=120.0, description="SERP provider request timeout in seconds"
    )
    serp_max_retries: int = Field(
        default=3, description="Maximum retry attempts for SERP requests"
    )
    serp_retry_delay: float = Field(
        default=1.0, description="Base delay between retries in seconds"
    )

    # Page fetch provider
    page_fetch_api_url: str | None = Field(
        default=None,
        description="Page fetch (scrape) endpoint, e.g. http://localhost:8080/api/scrape",
    )
    page_fetch_timeout: float = Field(
        default=60.0, description="Page fetch request timeout in seconds"
    )
    page_fetch_max_retries: int = Field(
        default=2, description="Maximum retry attempts for page fetches"
    )
    page_fetch_retry_delay: float = Field(
        default=1.0, description="Base delay between retries in seconds"
    )

    # Google Ads keyword planning
    google_ads_developer_token: str | None = Field(default=None)
    google_ads_client_id: str | None = Field(default=None)
    google_ads_client_secret: str | None = Field(default=None)
    google_ads_refresh_token: str | None = Field(default=None)
    google_ads_login_customer_id: str | None = Field(default=None)
    google_ads_customer_id: str | None = Field(default=None)
    google_ads_api_version: str = Field(default="v19")
    google_ads_timeout: float = Field(
        default=60.0, description="Google Ads request timeout in seconds"
    )
    google_ads_max_retries: int = Field(
        default=3, description="Maximum retry attempts for Google Ads requests"
    )
    google_ads_retry_delay: float = Field(
        default=1.0, description="Base delay between retries in seconds"
    )
    google_ads_default_rate_limit_delay: float = Field(
        default=5.0,
        description="Delay used on 429 when the response carries no retry hint",
    )

    # Claude/Anthropic LLM
    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key for Claude models",
    )
    claude_model: str = Field(
        default="claude-3-haiku-20240307",
        description="Claude model used for keyword clustering",
    )
    claude_timeout: float = Field(
        default=60.0, description="Claude API request timeout in seconds"
    )
    claude_max_retries: int = Field(
        default=3, description="Maximum retry attempts for Claude API requests"
    )
    claude_retry_delay: float = Field(
        default=1.0, description="Base delay between retries in seconds"
    )
    claude_max_tokens: int = Field(
        default=4096, description="Maximum tokens in Claude response"
    )

    # Clustering workflow
    clustering_max_keywords: int = Field(
        default=80, description="Maximum keywords sent to the clustering model"
    )
    clustering_timeout_seconds: float = Field(
        default=60.0, description="Ceiling for one clustering run"
    )
    clustering_poll_interval_seconds: float = Field(
        default=5.0, description="Default interval for status polling"
    )

    # Volume lookups
    volume_spaced_cjk_variants: bool = Field(
        default=False,
        description="Also query spaced variants of short CJK-only keywords",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
