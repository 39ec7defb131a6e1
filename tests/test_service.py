"""Tests for the generate and convert request modes."""

import xml.etree.ElementTree as ET
from pathlib import Path

import httpx
import pytest

from og_card.engine import EngineState, RasterEngine
from og_card.errors import BlockedUrlError, EngineInitError, FetchFailure, MissingInput
from og_card.fonts import FontCache
from og_card.layout import ELLIPSIS
from og_card.service import SVG_MEDIA_TYPE, CardService

from conftest import FakeBackend

SIMPLE_SVG = '<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"/>'


async def public_resolver(host: str, port: int) -> list[str]:
    return ["93.184.216.34"]


class TestGenerate:
    """Card generation from title and description."""

    @pytest.mark.asyncio
    async def test_png_card(self, card_service: CardService, fake_backend: FakeBackend) -> None:
        result = await card_service.generate("Hello World")

        assert result.media_type == "image/png"
        assert result.content.startswith(b"\x89PNG")
        assert len(fake_backend.rendered) == 1
        assert fake_backend.rendered[0].startswith("<svg")
        assert card_service.fonts.is_ready
        assert card_service.engine.state is EngineState.READY

    @pytest.mark.asyncio
    async def test_svg_output_skips_engine(
        self, card_service: CardService, fake_backend: FakeBackend
    ) -> None:
        result = await card_service.generate("Hello World", output_format="svg")

        assert result.media_type == SVG_MEDIA_TYPE
        root = ET.fromstring(result.content.decode("utf-8"))
        assert root.get("width") == "1200"
        assert fake_backend.init_calls == 0
        assert card_service.engine.state is EngineState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_long_title_truncated(self, card_service: CardService) -> None:
        await card_service.fonts.ensure_loaded()

        title_lines, description_lines = card_service.layout("word " * 200)

        assert len(title_lines.lines) == 3
        assert title_lines.lines[-1].endswith(ELLIPSIS)
        assert description_lines.lines == ()

    @pytest.mark.asyncio
    async def test_description_capped_at_two_lines(self, card_service: CardService) -> None:
        await card_service.fonts.ensure_loaded()

        _, description_lines = card_service.layout("Title", "desc " * 100)

        assert len(description_lines.lines) == 2
        assert description_lines.truncated

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title", [None, "", "   "])
    async def test_blank_title(self, card_service: CardService, title: str | None) -> None:
        with pytest.raises(MissingInput, match="Missing title"):
            await card_service.generate(title)

    @pytest.mark.asyncio
    async def test_approximate_wrapping(self, font_cache: FontCache) -> None:
        service = CardService(
            fonts=font_cache,
            engine=RasterEngine(FakeBackend()),
            composer_strategy="text",
            wrap_strategy="approximate",
        )
        await font_cache.ensure_loaded()

        title_lines, _ = service.layout("word " * 200)

        assert len(title_lines.lines) == 3

    @pytest.mark.asyncio
    async def test_engine_failure_surfaces(self, font_cache: FontCache) -> None:
        service = CardService(
            fonts=font_cache, engine=RasterEngine(FakeBackend(fail=RuntimeError("no wasm")))
        )

        with pytest.raises(EngineInitError):
            await service.generate("Hello")

        # SVG output does not need the engine
        result = await service.generate("Hello", output_format="svg")
        assert result.media_type == SVG_MEDIA_TYPE


class TestConvert:
    """Rasterizing caller-supplied SVG."""

    @pytest.mark.asyncio
    async def test_inline_svg(self, card_service: CardService, fake_backend: FakeBackend) -> None:
        result = await card_service.convert(svg=SIMPLE_SVG)

        assert result.media_type == "image/png"
        assert fake_backend.rendered == [SIMPLE_SVG]

    @pytest.mark.asyncio
    async def test_body_takes_priority(
        self, card_service: CardService, fake_backend: FakeBackend
    ) -> None:
        body = b'<svg xmlns="http://www.w3.org/2000/svg" width="2" height="2"/>'

        await card_service.convert(svg=SIMPLE_SVG, body=body)

        assert fake_backend.rendered == [body.decode()]

    @pytest.mark.asyncio
    async def test_blank_body_falls_through(
        self, card_service: CardService, fake_backend: FakeBackend
    ) -> None:
        await card_service.convert(svg=SIMPLE_SVG, body=b"  ")
        assert fake_backend.rendered == [SIMPLE_SVG]

    @pytest.mark.asyncio
    async def test_no_source(self, card_service: CardService) -> None:
        with pytest.raises(MissingInput) as exc_info:
            await card_service.convert()

        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == (
            "Missing SVG. Provide 'title', 'url', 'svg' param, or POST body"
        )

    @pytest.mark.asyncio
    async def test_url_source(
        self, font_dir: Path, tmp_path: Path, fake_backend: FakeBackend
    ) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=SIMPLE_SVG))
        service = CardService(
            fonts=FontCache(
                {"title": "title.ttf", "body": "body.ttf"},
                font_dir=font_dir,
                cache_dir=tmp_path / "font-cache",
            ),
            engine=RasterEngine(fake_backend),
            resolver=public_resolver,
            transport=transport,
        )

        await service.convert(url="https://example.com/drawing.svg")

        assert fake_backend.rendered == [SIMPLE_SVG]

    @pytest.mark.asyncio
    async def test_unreachable_url(self, card_service: CardService) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        service = CardService(
            fonts=card_service.fonts,
            engine=card_service.engine,
            resolver=public_resolver,
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(FetchFailure) as exc_info:
            await service.convert(url="https://unreachable.test/a.svg")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_private_url_blocked(self, card_service: CardService) -> None:
        async def loopback(host: str, port: int) -> list[str]:
            return ["127.0.0.1"]

        service = CardService(
            fonts=card_service.fonts, engine=card_service.engine, resolver=loopback
        )

        with pytest.raises(BlockedUrlError):
            await service.convert(url="http://localhost:8080/admin.svg")

    @pytest.mark.asyncio
    async def test_private_url_allowed_when_guard_disabled(
        self, card_service: CardService, fake_backend: FakeBackend
    ) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=SIMPLE_SVG))
        service = CardService(
            fonts=card_service.fonts,
            engine=card_service.engine,
            block_private_networks=False,
            transport=transport,
        )

        await service.convert(url="http://localhost:8080/drawing.svg")

        assert fake_backend.rendered == [SIMPLE_SVG]
