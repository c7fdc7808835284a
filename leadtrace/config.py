"""Configuration settings for the leadtrace identity engine."""

from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Paths
    base_dir: Path = Path(__file__).parent.parent
    data_dir: Path = base_dir / "data"
    db_path: Path = data_dir / "leadtrace.db"

    # API Keys
    google_maps_api_key: str = ""
    ipinfo_token: str = ""

    # HTTP Client Settings
    user_agent: str = "LeadGenBot/1.0"
    browser_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36"
    )
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    collector_timeout: float = 3.0  # per-collector budget in seconds
    favicon_timeout: float = 1.5
    rate_limit_delay: float = 0.5  # seconds between requests per domain

    # Fusion policy
    source_caps: dict[str, float] = {
        "reverse_dns": 0.90,
        "tls_cert": 0.90,
        "http_fetch": 0.80,
        "favicon_hash": 0.85,
        "host_header": 0.80,
        "google_maps": 0.80,
        "website_scrape": 0.70,
        "isp_baseline": 0.50,
        "ipapi_baseline": 0.50,
        "cache_reuse": 0.60,
        "final_likely": 0.90,
        "form_submission": 1.00,
    }
    default_source_cap: float = 0.75
    acceptance_threshold: float = 0.5
    max_weights_per_source: int = 2
    max_single_weight: float = 0.95
    max_reasons: int = 6

    # Geo matching
    geo_close_radius_m: float = 2000.0

    # Cache / backoff policy
    identity_ttl_days: int = 7
    people_ttl_days: int = 14
    retry_base_minutes: int = 15
    retry_max_minutes: int = 24 * 60
    max_attempts: int = 5
    lock_ttl_seconds: int = 300
    queue_batch_size: int = 50
    queue_cleanup_days: int = 30

    # People scraper guard rails
    people_min_bytes: int = 30 * 1024
    people_max_bytes: int = 2 * 1024 * 1024
    people_max_candidates: int = 12
    people_max_extra_links: int = 3

    # Database URL
    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

# Ensure data directory exists
settings.data_dir.mkdir(parents=True, exist_ok=True)
