from pathlib import Path
from typing import List, Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Sections enriched per scan: Security, Performance, SEO, Accessibility
ENRICHED_SECTION_COUNT = 4


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Site Audit Engine"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True

    # Comma-separated in .env, e.g.: http://localhost:5173,https://myapp.com
    CORS_ORIGINS: str = "*"

    # ── Security probe ──────────────────────────
    SECURITY_FETCH_TIMEOUT: float = 7.0

    # ── Browser / Selenium ──────────────────────
    CHROMEDRIVER_PATH: Optional[str] = None
    CHROME_BINARY_PATH: Optional[str] = None
    PAGE_LOAD_TIMEOUT: int = 30

    # ── Lighthouse ──────────────────────────────
    LIGHTHOUSE_BIN: str = "lighthouse"
    LIGHTHOUSE_TIMEOUT: int = 120

    # ── axe-core ────────────────────────────────
    AXE_CORE_PATH: Optional[str] = None
    AXE_CORE_URL: str = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.10.2/axe.min.js"

    # ── LLM suggestions ─────────────────────────
    GOOGLE_GEMINI_API_KEY: Optional[str] = None
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_TIMEOUT: float = 20.0
    GEMINI_MAX_RETRIES: int = 1

    # ── Background jobs / store ─────────────────
    AUDIT_MAX_WORKERS: int = 4
    REDIS_URL: Optional[str] = None
    # Lifetime of Redis record locks and enrichment claims, in seconds
    SCAN_LOCK_TIMEOUT: int = 180

    @model_validator(mode="after")
    def check_enrichment_fits_lock(self) -> "Settings":
        worst_case = ENRICHED_SECTION_COUNT * self.GEMINI_TIMEOUT * (self.GEMINI_MAX_RETRIES + 1)
        if worst_case > self.SCAN_LOCK_TIMEOUT:
            raise ValueError(
                f"SCAN_LOCK_TIMEOUT ({self.SCAN_LOCK_TIMEOUT}s) must cover a full enrichment pass "
                f"of up to {worst_case:g}s (GEMINI_TIMEOUT x attempts x {ENRICHED_SECTION_COUNT} sections)"
            )
        return self

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
