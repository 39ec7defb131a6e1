"""Application configuration."""

import tempfile
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


SOURCE_SERIF_BOLD_URL = (
    "https://github.com/adobe-fonts/source-serif/raw/release/TTF/SourceSerif4-Bold.ttf"
)
FIGTREE_REGULAR_URL = (
    "https://github.com/erikdkennedy/figtree/raw/master/fonts/ttf/Figtree-Regular.ttf"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables (OG_CARD_*) and .env.

    Priority: environment variables > .env > defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="OG_CARD_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Fonts. Sources are absolute URLs, origin-relative paths ("/fonts/x.ttf"),
    # or file names inside font_dir when bundled fonts are deployed.
    title_font_source: str = SOURCE_SERIF_BOLD_URL
    body_font_source: str = FIGTREE_REGULAR_URL
    font_dir: str | None = None  # Bundled font directory (static asset mode)
    font_origin: str | None = None  # Base URL for origin-relative sources
    font_cache_dir: str = str(Path(tempfile.gettempdir()) / "og-card-fonts")

    # Outbound fetches
    fetch_timeout: float = Field(default=10.0, gt=0)  # seconds, single attempt
    block_private_networks: bool = True

    # Layout
    composer_strategy: Literal["outline", "text"] = "outline"
    wrap_strategy: Literal["measured", "approximate"] = "measured"
    # em fraction for approximate wrapping
    average_char_width: float = Field(default=0.55, gt=0, le=1)
    background: Literal["brand", "dotgrid"] = "brand"

    # Rasterizer (fixed per deployment, never request-controlled)
    raster_dpi: int = Field(default=300, gt=0)
    raster_transparent: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    dev_mode: bool = True
    log_json: bool = False


settings = Settings()
