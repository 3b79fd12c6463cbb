import io

import pytest
from PIL import Image

from scavenger.core.config import Settings, get_settings
from scavenger.core.dependencies import get_cost_sink, get_scan_cache


@pytest.fixture(autouse=True)
def _reset_cached_singletons():
    # Tests build their own Settings / sinks; never leak a cached one across tests.
    get_settings.cache_clear()
    get_cost_sink.cache_clear()
    get_scan_cache.cache_clear()
    yield
    get_settings.cache_clear()
    get_cost_sink.cache_clear()
    get_scan_cache.cache_clear()


def make_image_bytes(width: int = 64, height: int = 48, fmt: str = "PNG", mode: str = "RGB", color=(200, 40, 40)) -> bytes:
    """Encode a solid-colour test image."""
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    buf = io.BytesIO()
    Image.new(mode, (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


def mock_settings(**overrides) -> Settings:
    """Settings pinned to the mock provider with no credentials."""
    values = {
        "ai_provider": "mock",
        "openai_api_key": "",
        "anthropic_api_key": "",
        "database_url": "",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return mock_settings()
