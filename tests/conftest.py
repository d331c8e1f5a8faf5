import io
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

# Ensure the project sources are importable without installing the package.
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# Qt needs no display for QImage decoding, signals or QStandardPaths.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PIL import Image  # noqa: E402

from tjimagecache.infrastructure.services.delivery import create_delivery_thread  # noqa: E402


def make_png(color: str = "red", size: tuple[int, int] = (4, 3)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture()
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture()
def delivery():
    """Dedicated delivery thread, torn down after the test."""
    executor = create_delivery_thread()
    yield executor
    executor.shutdown(wait=True)


@pytest.fixture()
def io_pool():
    executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="test-io")
    yield executor
    executor.shutdown(wait=True)
