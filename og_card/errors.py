"""Error types for the card pipeline.

Every error carries the HTTP status the API layer reports for it. Only
MissingInput is a client error; everything else is a server-side failure.
"""

from __future__ import annotations


class OgCardError(Exception):
    """Base class for all pipeline errors."""

    status_code: int = 500


class MissingInput(OgCardError):
    """Neither a title nor any convert-mode source was supplied."""

    status_code = 400
    default_message = "Missing SVG. Provide 'title', 'url', 'svg' param, or POST body"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class FetchFailure(OgCardError):
    """An upstream fetch (font or SVG source) failed."""

    def __init__(
        self,
        source: str,
        *,
        status: int | None = None,
        cause: str | None = None,
        what: str = "resource",
    ) -> None:
        self.source = source
        self.status = status
        self.cause = cause
        detail = f"{status}" if status is not None else (cause or "unknown error")
        super().__init__(f"Failed to fetch {what}: {detail}")


class FontLoadError(FetchFailure):
    """A font asset could not be fetched or parsed."""

    def __init__(self, source: str, *, status: int | None = None, cause: str | None = None) -> None:
        super().__init__(source, status=status, cause=cause, what="font")


class BlockedUrlError(FetchFailure):
    """A URL was rejected before fetching (scheme or private address)."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(source, cause=reason, what="SVG")


class FontNotLoaded(OgCardError):
    """A font was used before the font cache reported it ready."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Font not loaded: {key}")


class RenderFailure(OgCardError):
    """The vector document could not be rasterized."""

    def __init__(self, cause: str) -> None:
        self.cause = cause
        super().__init__(f"Render failed: {cause}")


class EngineInitError(OgCardError):
    """The raster engine failed to initialize."""

    def __init__(self, cause: str) -> None:
        self.cause = cause
        super().__init__(f"Raster engine initialization failed: {cause}")
