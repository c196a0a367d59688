"""
pytest configuration and shared fixtures for the Color Adjacency test suite
"""

import pytest
import numpy as np
import cv2
import tempfile
from pathlib import Path

import color_adjacency


RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
WHITE = (255, 255, 255, 255)


def write_rgba_png(image_rgba, path):
    """Save an RGBA array with OpenCV, which expects BGRA channel order."""
    image_bgra = image_rgba[:, :, [2, 1, 0, 3]]
    cv2.imwrite(str(path), image_bgra)
    return str(path)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def sample_image_rgba():
    """Create a simple 10x10 RGBA test image with known color regions."""
    image = np.zeros((10, 10, 4), dtype=np.uint8)
    image[:, :, 3] = 255

    image[0:5, 0:5, :3] = [255, 0, 0]      # Red
    image[0:5, 5:10, :3] = [0, 255, 0]     # Green
    image[5:10, 0:10, :3] = [0, 0, 255]    # Blue

    return image


@pytest.fixture
def sample_image_path(sample_image_rgba, temp_dir):
    """Save the sample RGBA image to a temporary PNG and return the path."""
    return write_rgba_png(sample_image_rgba, temp_dir / "sample_image.png")


@pytest.fixture
def single_color_image_path(temp_dir):
    """Save a single-color image to a temporary file and return the path."""
    image = np.full((20, 20, 4), [100, 150, 200, 255], dtype=np.uint8)
    return write_rgba_png(image, temp_dir / "single_color_image.png")


@pytest.fixture
def checkerboard_image():
    """Create a black and white checkerboard where every pixel touches the other color."""
    size = 16
    image = np.zeros((size, size, 4), dtype=np.uint8)
    image[:, :, 3] = 255
    for i in range(size):
        for j in range(size):
            if (i + j) % 2 == 0:
                image[i, j, :3] = [255, 255, 255]
    return image


@pytest.fixture
def random_image():
    """Create a small random image with a limited palette so colors repeat."""
    rng = np.random.default_rng(42)
    palette = np.array([
        [255, 0, 0, 255],
        [0, 255, 0, 255],
        [0, 0, 255, 255],
        [255, 255, 0, 255],
        [0, 0, 0, 0],
    ], dtype=np.uint8)
    return palette[rng.integers(0, len(palette), size=(40, 30))]


@pytest.fixture
def corrupted_image_path(temp_dir):
    """Create a file with an image extension that is not an image."""
    corrupted_path = temp_dir / "corrupted.png"
    corrupted_path.write_bytes(b"This is not an image file")
    return str(corrupted_path)


class TestHelpers:
    """Helper functions for testing."""

    @staticmethod
    def make_buffer(rows, columns, pixels):
        """
        Build dimensions and a pixel buffer from a flat, row-major list of colors.

        Args:
            rows: Number of image rows
            columns: Number of image columns
            pixels: List of (r, g, b, a) tuples, rows * columns long

        Returns:
            tuple: (Dimensions, buffer)
        """
        assert len(pixels) == rows * columns, "Pixel list does not fill the grid"
        return color_adjacency.Dimensions(rows, columns), list(pixels)

    @staticmethod
    def buffer_colors(buffer):
        """Unpack a packed pixel buffer into a list of (r, g, b, a) tuples."""
        return [color_adjacency.unpack_color(value) for value in buffer]

    @staticmethod
    def brute_force_adjacencies(image_rgba, full_adjacencies=False):
        """
        Compute the bidirectional adjacency set by checking all neighbors directly.

        Args:
            image_rgba: numpy array of shape (height, width, 4)
            full_adjacencies: Include diagonal neighbors
        """
        if full_adjacencies:
            directions = [(-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1)]
        else:
            directions = [(-1, 0), (0, -1), (0, 1), (1, 0)]

        height, width = image_rgba.shape[:2]
        pairs = set()
        for y in range(height):
            for x in range(width):
                origin = tuple(int(c) for c in image_rgba[y, x])
                for dy, dx in directions:
                    ny, nx = y + dy, x + dx
                    if 0 <= ny < height and 0 <= nx < width:
                        neighbor = tuple(int(c) for c in image_rgba[ny, nx])
                        if neighbor != origin:
                            pairs.add(color_adjacency.PixelPair(origin, neighbor))
        return pairs

    @staticmethod
    def assert_valid_adjacency_set(pairs):
        """
        Assert that a closed adjacency set has valid properties.

        Args:
            pairs: Set of PixelPair
        """
        assert isinstance(pairs, set), "Should be a set"

        for pair in pairs:
            assert pair.origin != pair.neighbor, f"Self-pair found: {pair}"
            assert pair.swap() in pairs, f"Missing reverse pair for {pair}"
            for color in (pair.origin, pair.neighbor):
                assert len(color) == 4, "Color should be an RGBA tuple"
                assert all(isinstance(c, int) for c in color), "Channel values should be ints"
                assert all(0 <= c <= 255 for c in color), "Channel values should be 0-255"


@pytest.fixture
def test_helpers():
    """Provide access to test helper functions."""
    return TestHelpers
