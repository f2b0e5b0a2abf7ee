"""Pytest configuration and fixtures"""
import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from thumbproxy.config import Settings  # noqa: E402
from thumbproxy.core.domain import RawPayload  # noqa: E402
from thumbproxy.infra.codec import PillowCodec  # noqa: E402
from thumbproxy.infra.metrics import get_metrics_collector  # noqa: E402


@pytest.fixture
def settings():
    """Settings with reference values, isolated from any local .env"""
    return Settings(
        _env_file=None,
        origin_base_url="https://cdn.example.com/emojis",
        target_size=50,
        max_image_bytes=2 * 1024 * 1024,
        max_dimension=2048,
        processing_timeout_seconds=30.0,
        edge_transform_base_url=None,
    )


@pytest.fixture
def static_fetcher():
    """Fetcher whose origin always returns the given bytes"""
    def _make(data: bytes):
        fetcher = MagicMock()
        fetcher.fetch = AsyncMock(return_value=RawPayload(data=data, declared_length=len(data)))
        return fetcher
    return _make


@pytest.fixture
def mock_codec():
    codec = MagicMock()
    codec.decode = AsyncMock()
    codec.decode_animated = AsyncMock()
    codec.resize = AsyncMock()
    codec.encode = AsyncMock()
    codec.encode_animated = AsyncMock()
    return codec


@pytest.fixture
def mock_animated():
    animated = MagicMock()
    animated.transform = AsyncMock()
    return animated


@pytest.fixture
def decoded_frames(monkeypatch):
    """Records every frame the Pillow codec turns into a pixel buffer"""
    recorded = []
    to_buffer = PillowCodec._to_buffer

    def _recording(img):
        recorded.append(img.size)
        return to_buffer(img)

    monkeypatch.setattr(PillowCodec, "_to_buffer", staticmethod(_recording))
    return recorded


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


# ============================================================================
# aiohttp session mocks
# ============================================================================

def make_mock_response(status=200, headers=None, chunks=None):
    """Mock aiohttp response whose body streams ``chunks``"""
    resp = MagicMock()
    resp.status = status
    resp.headers = headers or {}

    async def _iter(_size):
        for c in chunks or []:
            yield c

    resp.content = MagicMock()
    resp.content.iter_chunked = MagicMock(side_effect=_iter)
    return resp


def make_mock_session(response=None, error=None):
    """Mock session whose .get() yields ``response`` or raises ``error`` on enter"""
    ctx = AsyncMock()
    if error is not None:
        ctx.__aenter__ = AsyncMock(side_effect=error)
    else:
        ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.get = MagicMock(return_value=ctx)
    return session


@pytest.fixture
def mock_session_factory():
    return make_mock_session


@pytest.fixture
def mock_response_factory():
    return make_mock_response
