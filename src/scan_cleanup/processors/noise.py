"""Noise classification: deciding which graphemes are specks.

Rules are applied in order; the first one that fires decides:

1. a manual override set by a reviewer;
2. too small;
3. inside the page margins;
4. too light on average;
5. isolated, meaning small with no large grapheme nearby.

Anything that survives all five is kept.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..config.models import CleanupConfig
from .labeling import AnalyzedImage, Grapheme

logger = logging.getLogger(__name__)


class Override(str, Enum):
    """Reviewer decision for a single grapheme."""
    AUTO = "auto"
    FORCE_KEEP = "force_keep"
    FORCE_REMOVE = "force_remove"


class RemovalReason(str, Enum):
    """Why a grapheme was kept or removed."""
    KEPT = "kept"
    MANUAL_KEEP = "manual_keep"
    MANUAL_REMOVE = "manual_remove"
    TOO_SMALL = "too_small"
    INSIDE_MARGINS = "inside_margins"
    TOO_LIGHT = "too_light"
    ISOLATED = "isolated"


@dataclass(frozen=True)
class Classification:
    """Decision for the grapheme at ``index``."""
    index: int
    keep: bool
    reason: RemovalReason


class Overrides:
    """Reviewer overrides, keyed by grapheme seed pixel.

    The store lives outside the analyzed image, so analyzing the same page
    again keeps the annotations: a grapheme that still exists keeps its seed.
    """

    def __init__(self, entries: Optional[Dict[Tuple[int, int], Override]] = None):
        self._entries: Dict[Tuple[int, int], Override] = {}
        for key, value in (entries or {}).items():
            self.set_key(key, value)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, grapheme: Grapheme) -> bool:
        return grapheme.key in self._entries

    def set_key(self, key: Tuple[int, int], override: Override) -> None:
        override = Override(override)
        key = (int(key[0]), int(key[1]))
        if override == Override.AUTO:
            self._entries.pop(key, None)
        else:
            self._entries[key] = override

    def set(self, grapheme: Grapheme, override: Override) -> None:
        """Attach ``override`` to ``grapheme``; ``AUTO`` clears it."""
        self.set_key(grapheme.key, override)

    def set_at(self, analyzed: AnalyzedImage, x: int, y: int, override: Override) -> bool:
        """Override the grapheme under pixel ``(x, y)``.

        Returns:
            False if the pixel is background and nothing was changed
        """
        grapheme = analyzed.grapheme_at(x, y)
        if grapheme is None:
            return False
        self.set(grapheme, override)
        return True

    def get(self, grapheme: Grapheme) -> Override:
        return self._entries.get(grapheme.key, Override.AUTO)

    def clear(self) -> None:
        self._entries.clear()

    def to_dict(self) -> Dict[str, str]:
        """Serialise as ``{"x,y": "force_keep" | "force_remove"}``."""
        return {f"{x},{y}": value.value for (x, y), value in sorted(self._entries.items())}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "Overrides":
        entries = {}
        for key, value in data.items():
            x, y = (int(part) for part in key.split(","))
            entries[(x, y)] = Override(value)
        return cls(entries)


def _positive_difference(a: int, b: int) -> int:
    return a - b if a >= b else b - a


def is_near(grapheme: Grapheme, other: Grapheme, distance: int) -> bool:
    """Edge-alignment proximity test between two bounding boxes.

    Two graphemes are near when their top or bottom edges are closer than
    ``distance`` and their left or right edges are too. This is not a
    spatial distance.
    """
    vertical = (_positive_difference(grapheme.top, other.top) < distance
                or _positive_difference(grapheme.bottom, other.bottom) < distance)
    horizontal = (_positive_difference(grapheme.left, other.left) < distance
                  or _positive_difference(grapheme.right, other.right) < distance)
    return vertical and horizontal


def search_order(index: int, count: int) -> Iterable[int]:
    """Indices probed when looking for an anchor near grapheme ``index``.

    Alternates ``+1, -1, +2, -2, ...`` around ``index``, wrapping around the
    list, for ``count - 1`` probes. Each other index comes up exactly once,
    nearest in scan order first.
    """
    for i in range(count - 1):
        step = 1 + i // 2
        offset = -step if i % 2 == 1 else step
        yield (index + offset) % count


def is_isolated(
    index: int,
    graphemes: Sequence[Grapheme],
    size_threshold: int,
    distance_threshold: int,
) -> bool:
    """Whether grapheme ``index`` is small and has no anchor nearby.

    Anchors are other graphemes with at least ``size_threshold`` pixels.
    The search walks :func:`search_order` and stops at the first anchor
    within ``distance_threshold``. Scan order follows page position, so a
    nearby anchor usually comes up within a few probes.
    """
    grapheme = graphemes[index]
    if grapheme.size >= size_threshold:
        return False

    for other_index in search_order(index, len(graphemes)):
        other = graphemes[other_index]
        # Two specks together do not save each other
        if other.size < size_threshold:
            continue
        if is_near(grapheme, other, distance_threshold):
            return False

    return True


def is_inside_margins(grapheme: Grapheme, width: int, height: int,
                      margins: Tuple[int, int]) -> bool:
    """Whether the bounding box reaches into the ``(horizontal, vertical)`` margin band."""
    horizontal, vertical = margins
    return (grapheme.top < vertical
            or grapheme.bottom >= height - vertical
            or grapheme.left < horizontal
            or grapheme.right >= width - horizontal)


def classify_grapheme(
    index: int,
    analyzed: AnalyzedImage,
    config: CleanupConfig,
    overrides: Optional[Overrides] = None,
) -> Classification:
    """Decide keep or remove for one grapheme."""
    grapheme = analyzed.graphemes[index]

    override = overrides.get(grapheme) if overrides is not None else Override.AUTO
    if override == Override.FORCE_KEEP:
        return Classification(index, True, RemovalReason.MANUAL_KEEP)
    if override == Override.FORCE_REMOVE:
        return Classification(index, False, RemovalReason.MANUAL_REMOVE)

    if grapheme.size <= config.speck_size_threshold:
        return Classification(index, False, RemovalReason.TOO_SMALL)

    if is_inside_margins(grapheme, analyzed.width, analyzed.height, config.page_margins):
        return Classification(index, False, RemovalReason.INSIDE_MARGINS)

    if grapheme.mean_lightness > config.speck_lightness_threshold:
        return Classification(index, False, RemovalReason.TOO_LIGHT)

    if is_isolated(index, analyzed.graphemes,
                   config.isolation_size_threshold, config.isolation_distance_threshold):
        return Classification(index, False, RemovalReason.ISOLATED)

    return Classification(index, True, RemovalReason.KEPT)


def classify_graphemes(
    analyzed: AnalyzedImage,
    config: CleanupConfig,
    overrides: Optional[Overrides] = None,
) -> List[Classification]:
    """Classify every grapheme of an analyzed page.

    Args:
        analyzed: Output of the labeling step
        config: Speck removal thresholds
        overrides: Optional reviewer overrides

    Returns:
        One classification per grapheme, in grapheme order
    """
    classifications = [
        classify_grapheme(index, analyzed, config, overrides)
        for index in range(len(analyzed.graphemes))
    ]

    if logger.isEnabledFor(logging.DEBUG):
        tally = Counter(c.reason.value for c in classifications)
        logger.debug("Classified %d graphemes: %s", len(classifications), dict(tally))

    return classifications
