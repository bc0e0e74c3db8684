import io
import os
import threading
from typing import List, Tuple

import pytest
from PIL import Image, ImageDraw

from src.core.config import Settings
from src.core.exceptions import circuit_breakers
from src.core.storage import LocalStagingStorage
from src.integrations.delivery import IDelivery


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    for breaker in circuit_breakers.values():
        breaker.reset()
    yield
    for breaker in circuit_breakers.values():
        breaker.reset()


def make_png(size=(128, 128), noise=False, color=(200, 30, 30)) -> bytes:
    """PNG test image; noise images do not compress (size ~ w*h*3 bytes)."""
    if noise:
        image = Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3))
    else:
        image = Image.new("RGB", size, color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def fake_remover(image_bytes: bytes) -> bytes:
    """Keeps a centered ellipse opaque and makes the rest transparent."""
    image = Image.open(io.BytesIO(image_bytes)).convert("RGBA")
    mask = Image.new("L", image.size, 0)
    w, h = image.size
    ImageDraw.Draw(mask).ellipse((w // 4, h // 4, 3 * w // 4, 3 * h // 4), fill=255)
    image.putalpha(mask)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class RecordingDelivery(IDelivery):
    def __init__(self):
        self.notices: List[Tuple[str, str]] = []
        self.stickers: List[Tuple[str, bytes]] = []
        self._lock = threading.Lock()

    def send_notice(self, identity: str, text: str) -> None:
        with self._lock:
            self.notices.append((identity, text))

    def send_sticker_result(self, identity: str, encoded_bytes: bytes) -> None:
        with self._lock:
            self.stickers.append((identity, encoded_bytes))


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def staging(tmp_path) -> LocalStagingStorage:
    return LocalStagingStorage(base_path=str(tmp_path / "staging"))


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        REDIS_HOST=None,
        STAGING_PATH=str(tmp_path / "staging"),
        DAILY_LIMIT=25,
        MAX_FILE_SIZE_BYTES=204800,
        EMBEDDED_QUEUE_DELAY_SECONDS=0.0,
        QUEUE_MIN_INTERVAL_SECONDS=0.0,
    )


@pytest.fixture
def image_factory():
    return make_png


@pytest.fixture
def remover():
    return fake_remover
