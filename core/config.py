"""
Application configuration using Pydantic Settings
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    """Harvester settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # eBay Browse API (OAuth client credentials)
    EBAY_APP_ID: Optional[str] = None
    EBAY_CLIENT_SECRET: Optional[str] = None
    EBAY_TOKEN_URL: str = "https://api.ebay.com/identity/v1/oauth2/token"
    EBAY_SEARCH_URL: str = "https://api.ebay.com/buy/browse/v1/item_summary/search"
    EBAY_SCOPE: str = "https://api.ebay.com/oauth/api_scope"
    EBAY_MARKETPLACE_ID: str = "EBAY_US"
    EBAY_CARD_CATEGORY_ID: str = "183454"

    # TCGCSV catalog API
    TCGCSV_BASE_URL: str = "https://tcgcsv.com/tcgplayer"

    # Target store
    STORE_BACKEND: str = "postgrest"
    SUPABASE_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
    )
    SUPABASE_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "SUPABASE_KEY", "SUPABASE_SERVICE_ROLE_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"
        ),
    )
    DATABASE_URL: Optional[str] = None

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Fetcher
    MAX_API_CALLS: int = 500
    # Retries after the first attempt on 429 or transport errors
    FETCH_MAX_RETRIES: int = Field(3, ge=0)
    FETCH_BACKOFF_BASE: float = 5.0
    FETCH_BACKOFF_MAX: float = 60.0
    TOKEN_REFRESH_MARGIN: int = 300
    HTTP_TIMEOUT: float = 30.0

    # Upsert batching
    UPSERT_BATCH_SIZE: int = 500
    # Write attempts per batch, the first one included
    STORE_MAX_RETRIES: int = Field(3, ge=1)
    STORE_RETRY_DELAY: float = 1.0

    # Fixed inter-call delays (seconds)
    GROUP_DELAY: float = 0.5
    SEARCH_DELAY: float = 1.5
    CARD_DELAY: float = 3.0
    QUERY_DELAY: float = 1.0

    # Scheduled catalog refresh
    SCHEDULER_ENABLED: bool = False
    SYNC_INTERVAL_MINUTES: int = 360
    SCHEDULED_CATEGORY_IDS: List[int] = [3, 68, 85]


settings = Settings()
