"""Process-wide raster engine initialization.

The engine moves UNINITIALIZED -> INITIALIZING -> READY or FAILED_PERMANENTLY.
Concurrent callers of ensure_ready() share one initialization. READY is kept
for the process lifetime. FAILED_PERMANENTLY makes every later call fail
fast with the original cause instead of hammering a broken backend.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from og_card.errors import EngineInitError

if TYPE_CHECKING:
    from og_card.rendering import RenderOptions

logger = logging.getLogger(__name__)

WARMUP_SVG = '<svg xmlns="http://www.w3.org/2000/svg" width="1" height="1"/>'


class EngineState(str, Enum):
    """Lifecycle of the raster engine."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED_PERMANENTLY = "failed_permanently"


class EngineAlreadyInitialized(Exception):
    """Raised by a backend whose one-time setup has already run."""


class RasterBackend(Protocol):
    """A native rendering backend."""

    name: str

    def initialize(self) -> None:
        """One-time setup. May raise EngineAlreadyInitialized on repeat calls."""
        ...

    def render(self, svg: str, options: RenderOptions, font_files: list[str]) -> bytes:
        """Render svg to PNG bytes."""
        ...


class ResvgBackend:
    """resvg (via resvg-py) rasterization backend."""

    name = "resvg"

    def __init__(self) -> None:
        self._svg_to_bytes: Any = None

    def initialize(self) -> None:
        if self._svg_to_bytes is not None:
            raise EngineAlreadyInitialized("Already initialized")
        from resvg_py import svg_to_bytes

        # Exercise the native module once so a broken install fails here.
        svg_to_bytes(svg_string=WARMUP_SVG, skip_system_fonts=True)
        self._svg_to_bytes = svg_to_bytes

    def render(self, svg: str, options: RenderOptions, font_files: list[str]) -> bytes:
        if self._svg_to_bytes is None:
            raise RuntimeError("resvg backend used before initialization")
        png = self._svg_to_bytes(
            svg_string=svg,
            background=options.background,
            skip_system_fonts=options.skip_system_fonts,
            dpi=options.dpi,
            font_files=font_files or None,
            shape_rendering=options.shape_rendering,
            text_rendering=options.text_rendering,
            image_rendering=options.image_rendering,
        )
        return bytes(png)


@dataclass(frozen=True)
class EngineHandle:
    """Ready-to-use backend. Immutable and safe to share across threads."""

    backend: RasterBackend

    def render(self, svg: str, options: RenderOptions, font_files: list[str]) -> bytes:
        return self.backend.render(svg, options, font_files)


class RasterEngine:
    """Owns the backend and its one-time initialization."""

    def __init__(self, backend: RasterBackend | None = None) -> None:
        self._backend: RasterBackend = backend or ResvgBackend()
        self._state = EngineState.UNINITIALIZED
        self._handle: EngineHandle | None = None
        self._error: EngineInitError | None = None
        self._pending: asyncio.Task[EngineHandle] | None = None

    @property
    def state(self) -> EngineState:
        return self._state

    async def ensure_ready(self) -> EngineHandle:
        """Initialize the backend once and return the shared handle.

        Raises:
            EngineInitError: initialization failed (now or on an earlier call)
        """
        if self._handle is not None:
            return self._handle
        if self._error is not None:
            raise EngineInitError(self._error.cause) from self._error

        loop = asyncio.get_running_loop()
        task = self._pending
        # A finished task here can only be a cancelled one; start over.
        if task is None or task.done() or task.get_loop() is not loop:
            task = loop.create_task(self._initialize())
            self._pending = task
        return await asyncio.shield(task)

    async def _initialize(self) -> EngineHandle:
        self._state = EngineState.INITIALIZING
        logger.info(f"Initializing raster engine ({self._backend.name})")
        try:
            await asyncio.to_thread(self._initialize_backend)
        except EngineInitError as e:
            self._state = EngineState.FAILED_PERMANENTLY
            self._error = e
            logger.error(f"Raster engine failed permanently: {e.cause}")
            raise

        self._handle = EngineHandle(backend=self._backend)
        self._state = EngineState.READY
        logger.info("Raster engine ready")
        return self._handle

    def _initialize_backend(self) -> None:
        try:
            self._backend.initialize()
        except EngineAlreadyInitialized:
            logger.info("Raster backend reports already initialized; treating as ready")
        except Exception as e:
            raise EngineInitError(str(e) or type(e).__name__) from e
