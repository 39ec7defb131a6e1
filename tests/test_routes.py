"""Tests for the HTTP surface."""

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from og_card import __version__
from og_card.engine import RasterEngine
from og_card.fonts import FontCache
from og_card.main import app
from og_card.service import CardService, get_card_service

from conftest import FakeBackend

SIMPLE_SVG = '<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"/>'


@pytest.fixture
def client(card_service: CardService) -> Iterator[TestClient]:
    app.dependency_overrides[get_card_service] = lambda: card_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestGenerateEndpoint:
    """GET with a title renders a card."""

    @pytest.mark.parametrize("path", ["/", "/og-image"])
    def test_png(self, client: TestClient, path: str) -> None:
        response = client.get(path, params={"title": "Hello World"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == "public, max-age=3600"
        assert response.content.startswith(b"\x89PNG")

    def test_svg(self, client: TestClient) -> None:
        response = client.get(
            "/", params={"title": "Hello World", "description": "Hi", "format": "svg"}
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("image/svg+xml")
        assert response.headers["cache-control"] == "public, max-age=31536000, immutable"
        assert response.text.startswith("<svg")

    def test_cors_header(self, client: TestClient) -> None:
        response = client.get(
            "/", params={"title": "Hello"}, headers={"Origin": "https://social.example"}
        )
        assert response.headers["access-control-allow-origin"] == "*"

    def test_request_id_echoed(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["x-request-id"] == "abc123"


class TestConvertEndpoint:
    """Requests without a title convert an SVG."""

    def test_inline_svg_param(self, client: TestClient, fake_backend: FakeBackend) -> None:
        response = client.get("/", params={"svg": SIMPLE_SVG})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert fake_backend.rendered == [SIMPLE_SVG]

    def test_post_body(self, client: TestClient, fake_backend: FakeBackend) -> None:
        response = client.post(
            "/og-image", content=SIMPLE_SVG, headers={"Content-Type": "image/svg+xml"}
        )

        assert response.status_code == 200
        assert fake_backend.rendered == [SIMPLE_SVG]

    def test_missing_input(self, client: TestClient) -> None:
        response = client.get("/")

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == (
            "Error: Missing SVG. Provide 'title', 'url', 'svg' param, or POST body"
        )

    def test_empty_post(self, client: TestClient) -> None:
        assert client.post("/").status_code == 400

    def test_blocked_url_is_server_error(self, client: TestClient) -> None:
        response = client.get("/", params={"url": "file:///etc/passwd"})

        assert response.status_code == 500
        assert response.text.startswith("Error: Failed to fetch SVG:")

    @pytest.mark.parametrize("url", ["http://example.com:99999/a.svg", "http://[::1/a.svg"])
    def test_malformed_url_keeps_error_contract(self, card_service: CardService, url: str) -> None:
        app.dependency_overrides[get_card_service] = lambda: card_service
        try:
            response = TestClient(app, raise_server_exceptions=False).get(
                "/", params={"url": url}, headers={"Origin": "https://social.example"}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.text.startswith("Error: Failed to fetch SVG: invalid URL")
        assert response.headers["access-control-allow-origin"] == "*"


class TestServerErrors:
    def test_engine_failure(self, font_cache: FontCache) -> None:
        service = CardService(
            fonts=font_cache, engine=RasterEngine(FakeBackend(fail=RuntimeError("boom")))
        )
        app.dependency_overrides[get_card_service] = lambda: service
        try:
            response = TestClient(app).get("/", params={"title": "Hello"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.text == "Error: Raster engine initialization failed: boom"

    def test_unexpected_exception_is_plain_text_with_cors(self) -> None:
        service = MagicMock()
        service.convert = AsyncMock(side_effect=RuntimeError("kaboom"))
        app.dependency_overrides[get_card_service] = lambda: service
        try:
            response = TestClient(app, raise_server_exceptions=False).get(
                "/",
                params={"svg": SIMPLE_SVG},
                headers={"Origin": "https://social.example", "X-Request-ID": "req-1"},
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "Error: kaboom"
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["x-request-id"] == "req-1"


class TestHealth:
    def test_cold_service(self, client: TestClient) -> None:
        assert client.get("/health").json() == {
            "status": "ok",
            "engine": "uninitialized",
            "fonts": {"title": "unloaded", "body": "unloaded"},
        }

    def test_after_first_card(self, client: TestClient) -> None:
        client.get("/", params={"title": "Warm up"})

        data = client.get("/health").json()
        assert data["engine"] == "ready"
        assert data["fonts"] == {"title": "ready", "body": "ready"}

    def test_version(self, client: TestClient) -> None:
        data = client.get("/version").json()
        assert data["version"] == __version__
        assert data["composer"] in ("outline", "text")
