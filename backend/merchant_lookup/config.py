from pydantic_settings import BaseSettings
from functools import lru_cache
import os


MARKETPLACE_ORIGIN = "https://www.affirm.com"


class Settings(BaseSettings):
    use_mock: bool = False
    debug: bool = False

    host: str = "127.0.0.1"
    port: int = 8787

    # Cache
    cache_ttl_seconds: int = 12 * 60 * 60

    # Upstream marketplace
    search_url_template: str = (
        MARKETPLACE_ORIGIN
        + "/api/marketplace/search/v2/?query={query}&entity_type=merchants"
    )
    details_api_template: str = MARKETPLACE_ORIGIN + "/api/marketplace/merchants/v2/{key}/details"
    details_page_template: str = MARKETPLACE_ORIGIN + "/shopping/merchants/{key}"
    listing_page_url: str = MARKETPLACE_ORIGIN + "/shopping"
    referer: str = MARKETPLACE_ORIGIN + "/shopping"
    asset_hosts: list[str] = ["affirm.com", "affirmcdn.com", "cloudfront.net", "imgix.net"]
    use_details_api: bool = True
    request_timeout_seconds: float = 15.0

    # Browser
    browser_executable_path: str | None = None
    headless: bool = True
    viewport_width: int = 1440
    viewport_height: int = 900
    max_concurrent_pages: int = 4
    navigation_timeout_ms: int = 30000  # milliseconds
    hero_wait_seconds: float = 10.0
    search_input_wait_seconds: float = 8.0
    autocomplete_wait_seconds: float = 8.0
    poll_interval_seconds: float = 0.25
    typing_delay_ms: int = 80
    overlay_max_rounds: int = 4

    # API
    max_batch_size: int = 50

    class Config:
        # Look for .env in the repo root (two levels up from backend/merchant_lookup/)
        env_file = os.path.join(os.path.dirname(__file__), "..", "..", ".env")
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings():
    return Settings()
