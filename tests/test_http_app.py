# tests/test_http_app.py
"""End-to-end tests for the HTTP surface (real codec, fake origin)."""
from __future__ import annotations

import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from thumbproxy.core.domain import DelegatedResult, Outcome, OutcomeStatus
from thumbproxy.core.pipeline import ThumbnailPipeline
from thumbproxy.infra.codec import PillowCodec
from thumbproxy.transport.http_app import app, get_pipeline, get_response_builder
from thumbproxy.transport.responses import ResponseBuilder
from image_factories import animated_container, webp_bytes

IMMUTABLE = "public, max-age=31536000, immutable"


@pytest.fixture
def response_builder():
    return ResponseBuilder(immutable_cache_control=IMMUTABLE, delegated_cache_control="no-cache")


@pytest.fixture
def client_for(response_builder):
    """Build a TestClient whose routes use the given pipeline"""
    def _make(pipeline):
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        app.dependency_overrides[get_response_builder] = lambda: response_builder
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture
def codec():
    return PillowCodec(max_pixels=16 * 1024 * 1024)


class TestThumbnailRoute:
    def test_static_thumbnail(self, client_for, settings, static_fetcher, codec, mock_animated):
        pipeline = ThumbnailPipeline(settings, static_fetcher(webp_bytes(64, 32)), codec, mock_animated)

        resp = client_for(pipeline).get("/123")

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/webp"
        assert resp.headers["cache-control"] == IMMUTABLE
        with Image.open(io.BytesIO(resp.content)) as img:
            assert img.format == "WEBP"
            assert img.size == (50, 25)

    def test_square_source_fills_target_box(self, client_for, settings, static_fetcher, codec, mock_animated):
        pipeline = ThumbnailPipeline(settings, static_fetcher(webp_bytes(64, 64)), codec, mock_animated)

        resp = client_for(pipeline).get("/123")

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/webp"
        assert resp.headers["cache-control"] == IMMUTABLE
        with Image.open(io.BytesIO(resp.content)) as img:
            assert img.size == (50, 50)
        mock_animated.transform.assert_not_awaited()

    def test_animated_is_passed_through(self, client_for, settings, static_fetcher, mock_codec, mock_animated):
        mock_animated.transform.return_value = DelegatedResult(status_code=200, data=b"edge-webp")
        pipeline = ThumbnailPipeline(settings, static_fetcher(animated_container()), mock_codec, mock_animated)

        resp = client_for(pipeline).get("/456")

        assert resp.status_code == 200
        assert resp.content == b"edge-webp"
        assert resp.headers["cache-control"] == "no-cache"
        mock_codec.decode.assert_not_awaited()
        mock_codec.encode.assert_not_awaited()

    def test_delegated_error_status_passes_through(
        self, client_for, settings, static_fetcher, mock_codec, mock_animated
    ):
        mock_animated.transform.return_value = DelegatedResult(status_code=415, data=b"unsupported")
        pipeline = ThumbnailPipeline(settings, static_fetcher(animated_container()), mock_codec, mock_animated)

        resp = client_for(pipeline).get("/456")

        assert resp.status_code == 415
        assert resp.content == b"unsupported"

    def test_missing_identifier(self, client_for, settings, mock_codec, mock_animated):
        fetcher = MagicMock()
        fetcher.fetch = AsyncMock()
        resp = client_for(ThumbnailPipeline(settings, fetcher, mock_codec, mock_animated)).get("/")

        assert resp.status_code == 400
        assert resp.text == "Invalid image ID"
        fetcher.fetch.assert_not_awaited()

    def test_identifier_too_long(self, client_for, settings, mock_codec, mock_animated):
        fetcher = MagicMock()
        fetcher.fetch = AsyncMock()
        resp = client_for(ThumbnailPipeline(settings, fetcher, mock_codec, mock_animated)).get("/" + "a" * 101)

        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("text/plain")
        fetcher.fetch.assert_not_awaited()

    def test_response_carries_request_id(self, client_for, settings, static_fetcher, codec, mock_animated):
        pipeline = ThumbnailPipeline(settings, static_fetcher(webp_bytes(8, 8)), codec, mock_animated)

        resp = client_for(pipeline).get("/123", headers={"X-Request-ID": "req-42"})

        assert resp.headers["X-Request-ID"] == "req-42"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"

    def test_unexpected_pipeline_crash(self, client_for):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(side_effect=RuntimeError("kaboom"))

        resp = client_for(pipeline).get("/123")

        assert resp.status_code == 500
        assert resp.text == "Processing error: kaboom"


class TestFixedRoutes:
    def test_health(self, client_for):
        resp = client_for(MagicMock()).get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    def test_metrics(self, client_for, settings, static_fetcher, codec, mock_animated):
        client = client_for(ThumbnailPipeline(settings, static_fetcher(webp_bytes(8, 8)), codec, mock_animated))
        client.get("/123")

        data = client.get("/metrics").json()
        assert data["counters"]["thumbnail_requests_total{outcome=ok}"] == 1


class TestResponseBuilder:
    @pytest.mark.parametrize(
        "status, code, body",
        [
            (OutcomeStatus.BAD_REQUEST, 400, "Invalid image ID"),
            (OutcomeStatus.UPSTREAM_ERROR, 502, "upstream error"),
            (OutcomeStatus.TOO_LARGE, 413, "Image too large"),
            (OutcomeStatus.DIMENSIONS_TOO_LARGE, 413, "Image dimensions too large"),
            (OutcomeStatus.TIMEOUT, 408, "Request processing timeout"),
        ],
    )
    def test_failures(self, response_builder, status, code, body):
        resp = response_builder.build(Outcome.failure(status, "internal detail"))
        assert resp.status_code == code
        assert resp.body == body.encode()
        assert resp.media_type == "text/plain"
        assert "cache-control" not in resp.headers

    def test_internal_error_includes_message(self, response_builder):
        resp = response_builder.build(Outcome.failure(OutcomeStatus.INTERNAL_ERROR, "bad frame"))
        assert resp.status_code == 500
        assert resp.body == b"Processing error: bad frame"

    def test_ok(self, response_builder):
        resp = response_builder.build(Outcome(status=OutcomeStatus.OK, body=b"x", content_type="image/webp"))
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == IMMUTABLE
        assert resp.media_type == "image/webp"

    def test_delegated(self, response_builder):
        result = DelegatedResult(status_code=503, data=b"later")
        resp = response_builder.build(Outcome.delegated(result, "image/webp"))
        assert resp.status_code == 503
        assert resp.body == b"later"
        assert resp.headers["cache-control"] == "no-cache"
