"""Background classification: separating blank page from ink candidates."""

import logging

import cv2
import numpy as np

from .base import validate_image

logger = logging.getLogger(__name__)


def pixel_values(image: np.ndarray) -> np.ndarray:
    """Return the mean channel intensity of every pixel.

    The mean is the integer floor of ``(R + G + B) / 3``.

    Args:
        image: ``(H, W, 3)`` uint8 RGB image

    Returns:
        ``(H, W)`` uint8 array
    """
    total = image.astype(np.uint16).sum(axis=2)
    return (total // 3).astype(np.uint8)


def darkest_pixel_within(values: np.ndarray, x: int, y: int, distance: int) -> int:
    """Return the darkest value in the square window around ``(x, y)``.

    The window has half-width ``distance`` (Chebyshev radius) and is clamped
    to the image, so pixels near an edge see a smaller window.

    Args:
        values: ``(H, W)`` mean intensities from :func:`pixel_values`
        x: Column of the window centre
        y: Row of the window centre
        distance: Half-width of the window

    Returns:
        Minimum mean intensity inside the window
    """
    height, width = values.shape
    top = max(y - distance, 0)
    bottom = min(y + distance, height - 1)
    left = max(x - distance, 0)
    right = min(x + distance, width - 1)
    return int(values[top:bottom + 1, left:right + 1].min())


def darkest_neighbourhood(values: np.ndarray, distance: int) -> np.ndarray:
    """Compute :func:`darkest_pixel_within` for every pixel at once.

    A grey-level erosion is a minimum filter. Replicating the border keeps
    the result identical to clamping the window at the image edges.
    """
    if distance <= 0:
        return values.copy()
    size = 2 * distance + 1
    kernel = np.ones((size, size), dtype=np.uint8)
    return cv2.erode(values, kernel, borderType=cv2.BORDER_REPLICATE)


def classify_background(
    image: np.ndarray,
    off_white_threshold: int = 240,
    lightness_threshold: int = 100,
    lightness_distance: int = 1,
) -> np.ndarray:
    """Mark every pixel as background or ink candidate.

    A pixel is background when either rule holds:

    * off-white: its mean intensity is at least ``off_white_threshold``;
    * isolated-light: its mean intensity is at least ``lightness_threshold``
      and so is the darkest pixel within ``lightness_distance`` of it.

    The second rule leaves the light, antialiased edges of dark strokes
    alone, so strokes do not get holes punched into them.

    Args:
        image: ``(H, W, 3)`` uint8 RGB image
        off_white_threshold: Background mean-intensity cutoff
        lightness_threshold: Secondary cutoff for light pixels away from ink
        lightness_distance: Half-width of the darker-neighbour window

    Returns:
        ``(H, W)`` bool mask, ``True`` where the pixel is background

    Raises:
        InvalidImageError: If the image is empty or not RGB uint8
    """
    validate_image(image)

    values = pixel_values(image)
    off_white = values >= off_white_threshold
    light = values >= lightness_threshold
    if light.any():
        isolated_light = light & (darkest_neighbourhood(values, lightness_distance) >= lightness_threshold)
    else:
        isolated_light = light

    mask = off_white | isolated_light
    logger.debug(
        "Background: %d of %d pixels (%d off-white, %d isolated-light)",
        int(mask.sum()), mask.size, int(off_white.sum()), int(isolated_light.sum()),
    )
    return mask
