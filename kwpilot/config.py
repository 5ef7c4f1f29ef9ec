"""KWPilot: Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Google Ads API ──
    google_ads_developer_token: str = ""
    google_ads_client_id: str = ""
    google_ads_client_secret: str = ""
    google_ads_login_customer_id: str = ""
    google_ads_refresh_token: str = ""  # Fallback when no runtime token is stored
    google_ads_api_version: str = "v22"
    google_ads_redirect_uri: str = "http://localhost:8000/auth/google-ads/callback"

    # ── LinkedIn API ──
    linkedin_client_id: str = ""
    linkedin_client_secret: str = ""
    linkedin_redirect_uri: str = "http://localhost:8000/auth/linkedin/callback"
    linkedin_api_version: str = "202601"
    linkedin_scopes: str = "openid profile email r_ads r_marketing_leadgen_automation"

    # ── Keywords Everywhere ──
    keywords_everywhere_api_key: str = ""

    # ── AI Providers ──
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = "anthropic/claude-sonnet-4"
    openrouter_site_url: str = "http://localhost:8000"
    openrouter_app_name: str = "KWPilot"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-20250514"
    sarvam_api_key: Optional[str] = None
    default_ai_provider: str = "openrouter"  # openrouter | openai | claude | sarvam

    # ── Database ──
    database_url: str = ""

    # ── Research Pipeline ──
    analysis_batch_size: int = 40
    analysis_concurrency: int = 3
    analysis_max_retries: int = 2
    analysis_retry_base_delay: float = 2.0  # seconds; waits 2s then 4s
    keyword_cache_ttl_hours: int = 168
    max_keyword_ideas: int = 200
    batch_stagger_ms: int = 1500
    default_geo_target: str = "india"

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    cleanup_hour: int = 3  # Daily cache cleanup at 3 AM

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Serverless hosts have a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/kwpilot.db"
        return "sqlite:///./kwpilot.db"

    @property
    def google_ads_configured(self) -> bool:
        return bool(
            self.google_ads_developer_token
            and self.google_ads_client_id
            and self.google_ads_client_secret
            and self.google_ads_login_customer_id
        )

    @property
    def linkedin_configured(self) -> bool:
        return bool(self.linkedin_client_id and self.linkedin_client_secret)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
