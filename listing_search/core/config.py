from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from the repository root so it works regardless of CWD
_env_file = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=_env_file, extra="ignore")

    database_url: str = "postgresql://localhost/listing_search"
    sql_echo: bool = False

    # CORS (comma-separated origins; * allows all)
    cors_origins: str = "*"

    # Rate limiting for the public search endpoints (per IP)
    search_rate_limit: str = "60/minute"

    # Raw filter JSON larger than this is rejected before decoding
    max_filter_length: int = 8192

    # Personalization (off unless explicitly enabled); no base URL => read the local term table
    personalization_enabled: bool = False
    personalization_api_base_url: str | None = None
    personalization_api_key: str | None = None
    personalization_timeout_seconds: float = 2.0
    personalization_recency_window_days: int = 30

    # Promoted slot rotation per visitor/session
    promotion_rotation_interval_seconds: int = 120
    rotation_cache_max_entries: int = 10_000
    rotation_cache_ttl_seconds: int = 60 * 60

    # Soft latency budgets for relational calls (observability only)
    query_budget_default_ms: int = 250
    query_budgets_ms: dict[str, int] = {
        "search.listings": 400,
        "search.count": 400,
        "search.promotion": 200,
        "search.make_model": 100,
        "personalization.top_terms": 100,
        "related.listings": 200,
        "price.samples": 400,
    }

    @property
    def cors_origins_list(self) -> list[str]:
        """Parsed CORS origins for middleware."""
        raw = self.cors_origins.strip()
        return ["*"] if not raw else [o.strip() for o in raw.split(",") if o.strip()]

    def query_budget_ms(self, operation: str) -> int:
        return self.query_budgets_ms.get(operation, self.query_budget_default_ms)


@lru_cache
def get_settings() -> Settings:
    return Settings()
