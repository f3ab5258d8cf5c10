"""Rendering of cleaned pages and classification maps."""

from enum import IntEnum
from typing import Sequence, Tuple

import numpy as np

from .labeling import AnalyzedImage
from .noise import Classification


class PixelClass(IntEnum):
    """Per-pixel outcome of a cleanup pass."""
    BACKGROUND = 0
    KEPT = 1
    REMOVED = 2


OVERLAY_COLORS = {
    PixelClass.BACKGROUND: (255, 255, 255),
    PixelClass.KEPT: (0, 0, 0),
    PixelClass.REMOVED: (255, 0, 255),
}


def _keep_lookup(analyzed: AnalyzedImage, classifications: Sequence[Classification]) -> np.ndarray:
    if len(classifications) != len(analyzed.graphemes):
        raise ValueError(
            f"Expected {len(analyzed.graphemes)} classifications, got {len(classifications)}"
        )
    keep = np.zeros(len(classifications), dtype=bool)
    for classification in classifications:
        keep[classification.index] = classification.keep
    return keep


def render_classification_map(
    analyzed: AnalyzedImage,
    classifications: Sequence[Classification],
) -> np.ndarray:
    """Return an ``(H, W)`` uint8 map of :class:`PixelClass` values."""
    keep = _keep_lookup(analyzed, classifications)
    index_map = analyzed.index_map

    classes = np.full(index_map.shape, PixelClass.BACKGROUND, dtype=np.uint8)
    ink = index_map >= 0
    classes[ink] = np.where(keep[index_map[ink]], PixelClass.KEPT, PixelClass.REMOVED)
    return classes.reshape(analyzed.height, analyzed.width)


def render_cleaned(
    analyzed: AnalyzedImage,
    classifications: Sequence[Classification],
    speck_fill_color: Tuple[int, int, int] = (255, 255, 255),
    background_fill_color: Tuple[int, int, int] = (255, 255, 255),
) -> np.ndarray:
    """Paint the cleaned page.

    Background pixels get ``background_fill_color``, removed graphemes get
    ``speck_fill_color`` and kept graphemes get their original colors back
    unchanged.

    Args:
        analyzed: Output of the labeling step
        classifications: One decision per grapheme
        speck_fill_color: RGB color for removed graphemes
        background_fill_color: RGB color for background pixels

    Returns:
        New ``(H, W, 3)`` uint8 RGB image
    """
    keep = _keep_lookup(analyzed, classifications)

    output = np.empty((analyzed.height, analyzed.width, 3), dtype=np.uint8)
    output[:] = background_fill_color

    for grapheme, kept in zip(analyzed.graphemes, keep):
        if kept:
            output[grapheme.ys, grapheme.xs] = grapheme.colors
        else:
            output[grapheme.ys, grapheme.xs] = speck_fill_color

    return output


def render_overlay(
    analyzed: AnalyzedImage,
    classifications: Sequence[Classification],
) -> np.ndarray:
    """Color the classification map for eyeballing decisions.

    Kept ink is black, removed ink magenta and background white.
    """
    classes = render_classification_map(analyzed, classifications)
    palette = np.array([OVERLAY_COLORS[c] for c in sorted(OVERLAY_COLORS)], dtype=np.uint8)
    return palette[classes]
