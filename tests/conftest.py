"""
Pytest configuration and shared fixtures for scan cleanup tests.

Provides synthetic page images, configuration objects and helpers for
building graphemes by hand.
"""

import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Callable, Generator, List, Tuple
import numpy as np
import cv2

from scan_cleanup.config import Config
from scan_cleanup.processors import Grapheme
from scan_cleanup.processors.image_io import save_image
from scan_cleanup.utils.logging_utils import setup_logging

WHITE = (255, 255, 255)
BLACK = (0, 0, 0)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def blank_page() -> Callable[..., np.ndarray]:
    """Factory for a plain page of the given size and color."""
    def _blank_page(width: int = 200, height: int = 200, color=WHITE) -> np.ndarray:
        image = np.empty((height, width, 3), dtype=np.uint8)
        image[:] = color
        return image
    return _blank_page


@pytest.fixture
def draw_block() -> Callable[..., None]:
    """Factory that paints a solid ``w`` x ``h`` block with its top-left corner at ``(x, y)``."""
    def _draw_block(image: np.ndarray, x: int, y: int, w: int, h: int, color=BLACK) -> None:
        image[y:y + h, x:x + w] = color
    return _draw_block


@pytest.fixture
def make_grapheme() -> Callable[..., Grapheme]:
    """Factory for a grapheme with the given bounding box and pixel count.

    Only the bounding box, size and color matter to the noise rules, so the
    member coordinates are all placed on the top-left corner.
    """
    def _make_grapheme(top: int, bottom: int, left: int, right: int,
                       size: int = 1, color=BLACK) -> Grapheme:
        return Grapheme(
            xs=np.full(size, left, dtype=np.intp),
            ys=np.full(size, top, dtype=np.intp),
            colors=np.tile(np.array(color, dtype=np.uint8), (size, 1)),
            top=top, bottom=bottom, left=left, right=right,
            seed=(left, top),
        )
    return _make_grapheme


@pytest.fixture
def sample_page() -> np.ndarray:
    """A 400x200 page with a line of text and a few specks.

    The text sits well inside the default 50 pixel margins. Specks:

    * a 2x2 dot (too small) at (300, 100)
    * a 5x5 blot (isolated) at (340, 130)
    * a 4x4 blot inside the left margin at (10, 100)
    """
    image = np.full((200, 400, 3), 255, dtype=np.uint8)
    cv2.putText(image, "HELLO", (70, 120), cv2.FONT_HERSHEY_SIMPLEX, 2.0,
                BLACK, 4, cv2.LINE_8)
    image[100:102, 300:302] = BLACK
    image[130:135, 340:345] = BLACK
    image[100:104, 10:14] = BLACK
    return image


@pytest.fixture
def speck_regions() -> List[Tuple[slice, slice]]:
    """Row/column slices of the specks drawn on ``sample_page``."""
    return [
        (slice(100, 102), slice(300, 302)),
        (slice(130, 135), slice(340, 345)),
        (slice(100, 104), slice(10, 14)),
    ]


@pytest.fixture
def random_page() -> np.ndarray:
    """A noisy 60x50 page with a random mix of dark, grey and white pixels."""
    rng = np.random.default_rng(1234)
    values = rng.choice([0, 60, 120, 180, 250], size=(50, 60), p=[0.2, 0.1, 0.2, 0.1, 0.4])
    image = np.repeat(values[:, :, None], 3, axis=2).astype(np.uint8)
    # Slight color variation so colors are not all grey
    image[:, :, 0] = np.clip(values + rng.integers(0, 5, size=values.shape), 0, 255)
    return image


@pytest.fixture
def sample_config() -> Config:
    """Default configuration with quiet, plain logging."""
    return Config(logging={"level": "WARNING", "use_rich": False})


@pytest.fixture
def test_image_files(temp_dir: Path, sample_page: np.ndarray) -> List[Path]:
    """Write three copies of the sample page into ``temp_dir/input``."""
    input_dir = temp_dir / "input"
    input_dir.mkdir()

    files = []
    for i, name in enumerate(["page_001.png", "page_002.png", "page_003.png"]):
        page = sample_page.copy()
        # A speck in a different spot on every page
        page[150:152, 100 + i * 20:102 + i * 20] = BLACK
        path = input_dir / name
        save_image(page, path)
        files.append(path)
    return files


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Setup logging for tests."""
    # Only show warnings and errors in tests
    setup_logging(level="WARNING", use_rich=False, format_style="minimal")


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (deselect with '-m \"not unit\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location and name."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)

        if "slow" in item.name.lower() or "parallel" in item.name.lower():
            item.add_marker(pytest.mark.slow)
