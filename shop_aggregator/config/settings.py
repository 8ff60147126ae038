# shop_aggregator/config/settings.py

"""Central configuration for the shop_aggregator engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the shop_aggregator engine."""

    # --- HTTP ---
    REQUEST_TIMEOUT: int = 10           # Seconds before a request times out
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/json",
        "Accept-Encoding": "gzip",
        "Accept-Language": "en-US,en;q=0.9",
    }

    # --- Resilience ---
    NETWORK_RETRIES: int = 2            # Extra attempts on network errors
    RETRY_BACKOFF_BASE: float = 2.0     # Delay grows 2s, 4s, ...
    RATE_LIMIT_WAIT: float = 10.0       # One wait after an upstream 429
    ADAPTER_CALL_TIMEOUT: float = 15.0  # Per-service timeout in a fan-out
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 60.0  # Open → half-open (secs)
    CIRCUIT_BREAKER_HALF_OPEN_SUCCESSES: int = 1  # Trial wins to close

    # --- Quota protection ---
    MONTHLY_LIMIT: int = 5000           # Requests per calendar month
    MIN_REQUEST_INTERVAL: float = 2.0   # Seconds between upstream calls
    BURST_LIMIT: int = 5                # Requests allowed per burst window
    BURST_WINDOW: float = 300.0         # Burst window (secs)
    QUOTA_HISTORY_RETENTION_DAYS: int = 30

    # --- Result cache ---
    SEARCH_CACHE_TTL: float = 900.0     # Per-service search results
    PRODUCT_CACHE_TTL: float = 3600.0   # Single-product details
    AGGREGATE_CACHE_TTL: float = 300.0  # Merged multi-service results
    FALLBACK_CACHE_TTL: float = 86400.0  # Last known good merged results
    CACHE_MAX_ENTRIES: int = 1000       # Per sub-cache

    # --- Results ---
    DEFAULT_MAX_RESULTS: int = 20
    RELATED_PRODUCTS_LIMIT: int = 5

    # Query variants tried in order until one returns products
    QUERY_FALLBACK_CHAIN: list[str] = [
        "identity",
        "strip_model_numbers",
        "leading_terms",
    ]

    # --- Credentials ---
    SERPAPI_API_KEY: str = os.getenv("SERPAPI_API_KEY", "")
    SERPAPI_BASE_URL: str = "https://serpapi.com/search"

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = BASE_DIR / "data"
    STATE_DB_PATH: Path = DATA_DIR / "aggregator_state.db"
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Services (registry of upstream retailer APIs) ---
    AVAILABLE_SERVICES: list[dict[str, str]] = [
        {
            "id": "google_shopping",
            "label": "Google Shopping",
            "adapter": "shop_aggregator.adapters.serpapi_adapter.SerpApiAdapter",
            "engine": "google_shopping",
        },
        {
            "id": "ebay",
            "label": "eBay",
            "adapter": "shop_aggregator.adapters.serpapi_adapter.SerpApiAdapter",
            "engine": "ebay",
        },
        {
            "id": "walmart",
            "label": "Walmart",
            "adapter": "shop_aggregator.adapters.serpapi_adapter.SerpApiAdapter",
            "engine": "walmart",
            "monthly_limit": "2500",
        },
    ]
