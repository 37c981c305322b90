from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    app_env: str = "dev"
    log_level: str = "INFO"
    wikipedia_api_url: str = "https://en.wikipedia.org/w/api.php"
    wikipedia_rest_url: str = "https://en.wikipedia.org/api/rest_v1"
    user_agent: str = "WikiScroll/1.0 (https://github.com/wikiscroll)"
    request_timeout: float = 10.0
    page_size: int = 15
    enrich_results: bool = True
    probe_access: bool = False
    end_trigger_margin: int = 200
    prefetch_trigger_margin: int = 400
    prefetch_min_items: int = 3
    prefetch_offset: int = 3
    session_ttl_seconds: int = 1800

    @property
    def strict_preconditions(self) -> bool:
        """Fail fast on bad paging arguments everywhere except production."""
        return self.app_env != "prod"

    @staticmethod
    def from_env() -> "Settings":
        def _b(name: str, default: str) -> bool:
            return os.getenv(name, default).strip() in ("1", "true", "True", "yes", "YES")

        def _i(name: str, default: str) -> int:
            return int(os.getenv(name, default).strip())

        def _f(name: str, default: str) -> float:
            return float(os.getenv(name, default).strip())

        return Settings(
            app_env=os.getenv("APP_ENV", "dev").strip(),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
            wikipedia_api_url=os.getenv("WIKIPEDIA_API_URL", "https://en.wikipedia.org/w/api.php").strip(),
            wikipedia_rest_url=os.getenv("WIKIPEDIA_REST_URL", "https://en.wikipedia.org/api/rest_v1").strip(),
            user_agent=os.getenv("WIKISCROLL_USER_AGENT", "WikiScroll/1.0 (https://github.com/wikiscroll)").strip(),
            request_timeout=_f("REQUEST_TIMEOUT", "10"),
            page_size=_i("PAGE_SIZE", "15"),
            enrich_results=_b("ENRICH_RESULTS", "1"),
            probe_access=_b("PROBE_ACCESS", "0"),
            end_trigger_margin=_i("END_TRIGGER_MARGIN", "200"),
            prefetch_trigger_margin=_i("PREFETCH_TRIGGER_MARGIN", "400"),
            prefetch_min_items=_i("PREFETCH_MIN_ITEMS", "3"),
            prefetch_offset=_i("PREFETCH_OFFSET", "3"),
            session_ttl_seconds=_i("SESSION_TTL_SECONDS", "1800"),
        )
