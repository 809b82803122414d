"""Runtime settings read from the environment (.env loaded by the CLI)."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

DEFAULT_STORE_DIR = Path(".cache") / "extractor"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


class Settings(BaseModel):
    firecrawl_api_key: Optional[str] = None
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    max_pages: int = 25
    store_dir: Path = DEFAULT_STORE_DIR
    network_probe_enabled: bool = True
    headless: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            firecrawl_api_key=os.environ.get("FIRECRAWL_API_KEY") or None,
            firecrawl_base_url=os.environ.get("FIRECRAWL_BASE_URL", "https://api.firecrawl.dev"),
            max_pages=int(os.environ.get("EXTRACTOR_MAX_PAGES", "25")),
            store_dir=Path(os.environ.get("EXTRACTOR_STORE_DIR", str(DEFAULT_STORE_DIR))),
            network_probe_enabled=_env_flag("EXTRACTOR_NETWORK_PROBE", True),
            headless=_env_flag("EXTRACTOR_HEADLESS", True),
        )

    def require_firecrawl_key(self) -> str:
        """Get the Firecrawl API key or fail loudly."""
        if not self.firecrawl_api_key:
            raise ValueError("FIRECRAWL_API_KEY environment variable not set")
        return self.firecrawl_api_key


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
