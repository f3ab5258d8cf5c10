"""Grapheme labeling: grouping ink pixels into connected clusters.

Every pixel of an analyzed page ends up either in the background mask or in
exactly one grapheme. Graphemes are numbered in the raster order of their
first pixel, so neighbouring indices tend to be neighbours on the page; the
isolation rule in :mod:`.noise` depends on that.
"""

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Iterator, List, Optional, Tuple

import cv2
import numpy as np

from ..config.models import Connectivity, LabelingBackend
from ..exceptions import InvalidImageError
from .base import validate_image

logger = logging.getLogger(__name__)

NO_GRAPHEME = -1

# (dx, dy); the first four are the orthogonal neighbours
_NEIGHBOURS_FOUR = ((1, 0), (0, 1), (-1, 0), (0, -1))
_NEIGHBOURS_EIGHT = _NEIGHBOURS_FOUR + ((1, 1), (-1, 1), (-1, -1), (1, -1))


@dataclass(eq=False)
class Grapheme:
    """One connected cluster of ink pixels.

    Member pixels are stored column-wise: ``xs[i]``, ``ys[i]`` and
    ``colors[i]`` describe the i-th pixel in discovery order.
    """

    xs: np.ndarray
    ys: np.ndarray
    colors: np.ndarray
    top: int
    bottom: int
    left: int
    right: int
    seed: Tuple[int, int]

    def __len__(self) -> int:
        return len(self.xs)

    @property
    def size(self) -> int:
        """Number of member pixels."""
        return len(self.xs)

    @property
    def key(self) -> Tuple[int, int]:
        """Stable identifier: the first pixel of the grapheme in raster order."""
        return self.seed

    @property
    def width(self) -> int:
        return self.right - self.left + 1

    @property
    def height(self) -> int:
        return self.bottom - self.top + 1

    @property
    def bbox(self) -> Tuple[int, int, int, int]:
        """``(top, bottom, left, right)``, all inclusive."""
        return self.top, self.bottom, self.left, self.right

    @cached_property
    def mean_lightness(self) -> int:
        """Average of the member pixels' mean channel intensities."""
        values = self.colors.astype(np.uint32).sum(axis=1) // 3
        return int(values.sum() // len(values))

    def pixels(self) -> Iterator[Tuple[int, int, Tuple[int, int, int]]]:
        """Yield ``(x, y, (r, g, b))`` for each member pixel."""
        for x, y, color in zip(self.xs, self.ys, self.colors):
            yield int(x), int(y), (int(color[0]), int(color[1]), int(color[2]))


@dataclass(eq=False)
class AnalyzedImage:
    """Graphemes of one page plus the pixel to grapheme index map."""

    width: int
    height: int
    graphemes: List[Grapheme]
    index_map: np.ndarray
    background: np.ndarray

    def __len__(self) -> int:
        return len(self.graphemes)

    def grapheme_index_at(self, x: int, y: int) -> int:
        """Index of the grapheme covering ``(x, y)``, or ``NO_GRAPHEME``."""
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} image")
        return int(self.index_map[y * self.width + x])

    def grapheme_at(self, x: int, y: int) -> Optional[Grapheme]:
        """Grapheme covering ``(x, y)``, or None for background."""
        index = self.grapheme_index_at(x, y)
        if index == NO_GRAPHEME:
            return None
        return self.graphemes[index]

    def label_image(self) -> np.ndarray:
        """The index map as an ``(H, W)`` array."""
        return self.index_map.reshape(self.height, self.width)


def label_graphemes(
    image: np.ndarray,
    background: np.ndarray,
    connectivity: Connectivity = Connectivity.FOUR,
    backend: LabelingBackend = LabelingBackend.FLOOD_FILL,
) -> AnalyzedImage:
    """Partition all non-background pixels into connected graphemes.

    Args:
        image: ``(H, W, 3)`` uint8 RGB image
        background: ``(H, W)`` bool mask from ``classify_background``
        connectivity: Orthogonal only, or orthogonal and diagonal neighbours
        backend: Explicit-stack flood fill, or OpenCV connected components

    Returns:
        The analyzed image; the background mask is copied, not shared

    Raises:
        InvalidImageError: If the image is invalid or the mask does not match it
    """
    validate_image(image)
    height, width = image.shape[:2]
    if background is None or background.shape != (height, width):
        raise InvalidImageError(
            "Background mask must match the image size",
            shape=None if background is None else background.shape,
            image_shape=image.shape,
        )

    connectivity = Connectivity(connectivity)
    backend = LabelingBackend(backend)
    background = background.astype(bool, copy=True)

    if backend == LabelingBackend.OPENCV:
        graphemes = _label_opencv(image, background, connectivity)
    else:
        graphemes = _label_flood_fill(image, background, connectivity)

    index_map = np.full(width * height, NO_GRAPHEME, dtype=np.int32)
    for index, grapheme in enumerate(graphemes):
        index_map[grapheme.ys.astype(np.intp) * width + grapheme.xs] = index

    logger.debug("Labeled %d graphemes in %dx%d image (%s, %s)",
                 len(graphemes), width, height, backend.value, connectivity.value)

    return AnalyzedImage(
        width=width,
        height=height,
        graphemes=graphemes,
        index_map=index_map,
        background=background,
    )


def _label_flood_fill(
    image: np.ndarray, background: np.ndarray, connectivity: Connectivity
) -> List[Grapheme]:
    height, width = background.shape
    neighbours = _NEIGHBOURS_EIGHT if connectivity == Connectivity.EIGHT else _NEIGHBOURS_FOUR
    colors = image.reshape(-1, 3)

    # Flat visited grid indexed by y * width + x; starts as the background
    visited = bytearray(background.tobytes())
    graphemes = []

    for seed in np.flatnonzero(~background).tolist():
        if visited[seed]:
            continue

        seed_y, seed_x = divmod(seed, width)
        top = bottom = seed_y
        left = right = seed_x
        members = []

        stack = [seed]
        visited[seed] = 1
        while stack:
            p = stack.pop()
            members.append(p)
            y, x = divmod(p, width)

            if x < left:
                left = x
            if x > right:
                right = x
            if y < top:
                top = y
            if y > bottom:
                bottom = y

            for dx, dy in neighbours:
                nx = x + dx
                ny = y + dy
                if nx < 0 or ny < 0 or nx >= width or ny >= height:
                    continue
                q = ny * width + nx
                if visited[q]:
                    continue
                visited[q] = 1
                stack.append(q)

        flat = np.asarray(members, dtype=np.intp)
        ys, xs = np.divmod(flat, width)
        graphemes.append(Grapheme(
            xs=xs, ys=ys, colors=colors[flat],
            top=top, bottom=bottom, left=left, right=right,
            seed=(seed_x, seed_y),
        ))

    return graphemes


def _label_opencv(
    image: np.ndarray, background: np.ndarray, connectivity: Connectivity
) -> List[Grapheme]:
    width = background.shape[1]
    ink = (~background).astype(np.uint8)
    cv_connectivity = 8 if connectivity == Connectivity.EIGHT else 4
    _, labels = cv2.connectedComponents(ink, connectivity=cv_connectivity, ltype=cv2.CV_32S)

    flat_labels = labels.ravel()
    ink_pixels = np.flatnonzero(flat_labels)
    if ink_pixels.size == 0:
        return []

    # Renumber labels by the raster position of their first pixel so the
    # order matches the flood fill
    pixel_labels = flat_labels[ink_pixels]
    unique_labels, first_seen = np.unique(pixel_labels, return_index=True)
    rank = np.empty(unique_labels.max() + 1, dtype=np.int64)
    rank[unique_labels[np.argsort(first_seen, kind="stable")]] = np.arange(len(unique_labels))
    new_labels = rank[pixel_labels]

    order = np.argsort(new_labels, kind="stable")
    sorted_pixels = ink_pixels[order]
    counts = np.bincount(new_labels, minlength=len(unique_labels))
    colors = image.reshape(-1, 3)

    graphemes = []
    for flat in np.split(sorted_pixels, np.cumsum(counts)[:-1]):
        ys, xs = np.divmod(flat, width)
        graphemes.append(Grapheme(
            xs=xs, ys=ys, colors=colors[flat],
            top=int(ys.min()), bottom=int(ys.max()),
            left=int(xs.min()), right=int(xs.max()),
            seed=(int(xs[0]), int(ys[0])),
        ))

    return graphemes
