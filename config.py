"""
PlantScan - Runtime Configuration

Loads settings from a local `.env` file (if present) and the process
environment. Everything downstream receives a `Settings` value instead of
reading os.environ on its own.
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

GEMINI_PLACEHOLDER_KEY = "your_gemini_api_key_here"


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///plantscan.db"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    storage_bucket: str = "crop-images"
    cors_origins: Tuple[str, ...] = ("*",)

    @property
    def gemini_configured(self) -> bool:
        """A missing key and the template placeholder both count as 'not configured'."""
        key = (self.gemini_api_key or "").strip()
        return bool(key) and key != GEMINI_PLACEHOLDER_KEY

    @property
    def storage_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def get_settings() -> Settings:
    """Read the current environment into a Settings value."""
    load_dotenv()
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///plantscan.db"),
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
        gemini_api_base=os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"),
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        storage_bucket=os.getenv("STORAGE_BUCKET", "crop-images"),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
    )
