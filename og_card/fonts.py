"""Process-wide font cache.

Fonts are fetched once per process and shared read-only by every request.
Concurrent first callers of ensure_loaded() await one shared load task, so
each font source is fetched exactly once no matter how many requests arrive
while the cache is cold.
"""

from __future__ import annotations

import asyncio
import hashlib
import io
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import urljoin

import aiofiles
import httpx
from fontTools.ttLib import TTFont

from og_card.config import settings
from og_card.errors import FetchFailure, FontLoadError, FontNotLoaded
from og_card.fetch import build_client, fetch_bytes, read_static_asset

logger = logging.getLogger(__name__)

TITLE_FONT = "title"
BODY_FONT = "body"


class FontLoadState(str, Enum):
    """Load state of a single font asset."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass
class FontAsset:
    """A font known to the cache.

    Attributes:
        key: Logical key ("title", "body")
        source: URL, origin-relative path, or bundled file name
        state: Current load state
        data: Raw font bytes (empty until ready)
        font: Parsed fontTools font (None until ready)
        family: Family name from the font's name table
        weight: OS/2 weight class (400 when absent)
        path: File holding the bytes, handed to the raster engine
    """

    key: str
    source: str
    state: FontLoadState = FontLoadState.UNLOADED
    data: bytes = b""
    font: TTFont | None = None
    family: str = ""
    weight: int = 400
    path: Path | None = None

    @property
    def ready(self) -> bool:
        return self.state is FontLoadState.READY


def parse_font(data: bytes, source: str = "<memory>") -> TTFont:
    """Parse and fully decompile font bytes.

    Everything layout touches is decompiled up front so the font can be read
    from worker threads without lazy table loading.
    """
    try:
        font = TTFont(io.BytesIO(data), lazy=False)
        font.ensureDecompiled()
        font.getGlyphSet()
        if not font.getBestCmap():
            raise ValueError("font has no usable cmap")
        font["hmtx"]
        font["head"]
    except Exception as e:
        raise FontLoadError(source, cause=f"invalid font data: {e}") from e
    return font


def _family_name(font: TTFont, fallback: str) -> str:
    name = font["name"].getBestFamilyName() if "name" in font else None
    return name or fallback


def _weight_class(font: TTFont) -> int:
    if "OS/2" in font:
        return int(font["OS/2"].usWeightClass)
    return 400


def default_font_sources() -> dict[str, str]:
    """Font sources configured for this deployment."""
    return {
        TITLE_FONT: settings.title_font_source,
        BODY_FONT: settings.body_font_source,
    }


class FontCache:
    """Owns every FontAsset and the single in-flight load."""

    def __init__(
        self,
        sources: dict[str, str] | None = None,
        *,
        font_dir: str | Path | None = None,
        origin: str | None = None,
        cache_dir: str | Path | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        sources = sources if sources is not None else default_font_sources()
        self._assets = {key: FontAsset(key=key, source=src) for key, src in sources.items()}
        self._font_dir = Path(font_dir) if font_dir else None
        self._origin = origin
        self._cache_dir = Path(cache_dir or settings.font_cache_dir)
        self._transport = transport
        self._pending: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls) -> FontCache:
        return cls(
            font_dir=settings.font_dir,
            origin=settings.font_origin,
            cache_dir=settings.font_cache_dir,
        )

    @property
    def is_ready(self) -> bool:
        return all(asset.ready for asset in self._assets.values())

    @property
    def assets(self) -> dict[str, FontAsset]:
        return dict(self._assets)

    def state(self, key: str) -> FontLoadState:
        return self._assets[key].state

    def get(self, key: str) -> FontAsset:
        """Return a ready asset, or raise FontNotLoaded."""
        asset = self._assets.get(key)
        if asset is None or not asset.ready:
            raise FontNotLoaded(key)
        return asset

    def font_files(self) -> list[str]:
        """Paths of all ready fonts, for the raster engine."""
        return [str(a.path) for a in self._assets.values() if a.ready and a.path]

    async def ensure_loaded(self, origin: str | None = None) -> None:
        """Load every font that is not ready yet.

        Concurrent callers share one load task. The task is shielded so a
        cancelled caller does not abort the load for the others.

        Raises:
            FontLoadError: at least one font failed; ready fonts stay ready and
                failed ones are retried on the next call
        """
        if self.is_ready:
            return

        loop = asyncio.get_running_loop()
        task = self._pending
        if task is None or task.done() or task.get_loop() is not loop:
            task = loop.create_task(self._load_missing(origin))
            self._pending = task
        await asyncio.shield(task)

    async def _load_missing(self, origin: str | None) -> None:
        missing = [asset for asset in self._assets.values() if not asset.ready]
        for asset in missing:
            asset.state = FontLoadState.LOADING
        logger.info(f"Loading {len(missing)} font(s): {', '.join(a.key for a in missing)}")

        async with build_client(transport=self._transport) as client:
            results = await asyncio.gather(
                *(self._load_asset(asset, origin, client) for asset in missing),
                return_exceptions=True,
            )

        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            for error in errors:
                logger.error(f"Font load failed: {error}")
            raise errors[0]
        logger.info("All fonts ready")

    async def _load_asset(
        self, asset: FontAsset, origin: str | None, client: httpx.AsyncClient
    ) -> None:
        try:
            data = await self._fetch(asset.source, origin, client)
            font = parse_font(data, asset.source)
            path = await self._stage(asset, data)
        except BaseException:
            asset.state = FontLoadState.FAILED
            raise

        asset.data = data
        asset.font = font
        asset.family = _family_name(font, asset.key)
        asset.weight = _weight_class(font)
        asset.path = path
        asset.state = FontLoadState.READY
        logger.debug(f"Font {asset.key} ready: {asset.family} ({len(data)} bytes)")

    async def _fetch(self, source: str, origin: str | None, client: httpx.AsyncClient) -> bytes:
        try:
            if source.startswith(("http://", "https://")):
                return await fetch_bytes(source, client=client, what="font")
            if self._font_dir is not None:
                return await read_static_asset(self._font_dir / source.lstrip("/"))
            if source.startswith("/"):
                base = origin or self._origin
                if not base:
                    raise FontLoadError(source, cause="relative font source without an origin")
                return await fetch_bytes(urljoin(base, source), client=client, what="font")
            return await read_static_asset(Path(source))
        except FontLoadError:
            raise
        except FetchFailure as e:
            raise FontLoadError(source, status=e.status, cause=e.cause) from e

    async def _stage(self, asset: FontAsset, data: bytes) -> Path:
        """Write font bytes to the cache dir so the raster engine can load them."""
        digest = hashlib.sha256(data).hexdigest()[:16]
        path = self._cache_dir / f"{asset.key}-{digest}.ttf"
        try:
            await asyncio.to_thread(self._cache_dir.mkdir, parents=True, exist_ok=True)
            if not path.exists():
                tmp_path = path.with_suffix(".tmp")
                async with aiofiles.open(tmp_path, "wb") as f:
                    await f.write(data)
                await asyncio.to_thread(tmp_path.replace, path)
        except OSError as e:
            raise FontLoadError(asset.source, cause=f"cannot stage font: {e}") from e
        return path
