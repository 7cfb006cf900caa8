import os
from typing import Optional


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


class Settings:
    """Runtime settings, read from the environment."""

    def __init__(self, api_url: str = "http://localhost:8000/api", api_timeout: float = 30.0,
                 api_retry_attempts: int = 3, api_retry_delay: float = 1.0,
                 api_token: Optional[str] = None, search_limit: int = 10,
                 min_query_length: int = 2, cache_ttl: float = 300.0,
                 max_page_size: int = 100, log_level: str = "INFO"):
        self.api_url = api_url
        self.api_timeout = api_timeout
        self.api_retry_attempts = api_retry_attempts
        self.api_retry_delay = api_retry_delay
        self.api_token = api_token
        self.search_limit = search_limit
        self.min_query_length = min_query_length
        self.cache_ttl = cache_ttl
        self.max_page_size = max_page_size
        self.log_level = log_level

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_url=os.getenv("API_URL", "http://localhost:8000/api"),
            # API_TIMEOUT and API_RETRY_DELAY are given in milliseconds
            api_timeout=_env_float("API_TIMEOUT", 30000) / 1000.0,
            api_retry_attempts=_env_int("API_RETRY_ATTEMPTS", 3),
            api_retry_delay=_env_float("API_RETRY_DELAY", 1000) / 1000.0,
            api_token=os.getenv("API_TOKEN") or None,
            search_limit=_env_int("SEARCH_LIMIT", 10),
            min_query_length=_env_int("SEARCH_MIN_QUERY_LENGTH", 2),
            cache_ttl=_env_float("SEARCH_CACHE_TTL", 300),
            max_page_size=_env_int("MAX_PAGE_SIZE", 100),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
