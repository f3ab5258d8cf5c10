"""Speck removal: classify the graphemes of an analyzed page and render it."""

import logging
from typing import List, Optional

import numpy as np

from ..config.models import AnalysisConfig, CleanupConfig
from .analysis import analyze_image
from .base import BaseProcessor
from .labeling import AnalyzedImage
from .noise import Classification, Overrides, RemovalReason, classify_graphemes
from .render import render_cleaned, render_overlay

logger = logging.getLogger(__name__)


class ImageCleaner(BaseProcessor):
    """Processor that turns an analyzed page into a cleaned image."""

    def __init__(self, config: Optional[CleanupConfig] = None):
        super().__init__(config or CleanupConfig())
        self.last_classifications: List[Classification] = []

    def classify(self, analyzed: AnalyzedImage,
                 overrides: Optional[Overrides] = None) -> List[Classification]:
        """Keep/remove decision for every grapheme."""
        return classify_graphemes(analyzed, self.config, overrides)

    def process(self, analyzed: AnalyzedImage, overrides: Optional[Overrides] = None,
                **kwargs) -> np.ndarray:
        """Render the cleaned page.

        Args:
            analyzed: Output of :class:`ImageAnalyzer`
            overrides: Optional reviewer overrides

        Returns:
            ``(H, W, 3)`` uint8 RGB image of the same size as the source
        """
        self.clear_debug_images()

        classifications = self.classify(analyzed, overrides)
        self.last_classifications = classifications

        removed = sum(1 for c in classifications if not c.keep)
        logger.debug("Removing %d of %d graphemes", removed, len(classifications))

        if self.save_debug:
            self.save_debug_image("classification_overlay", render_overlay(analyzed, classifications))

        return render_cleaned(
            analyzed,
            classifications,
            speck_fill_color=self.config.speck_fill_color,
            background_fill_color=self.config.background_fill_color,
        )

    def removal_summary(self) -> dict:
        """Count of graphemes per reason for the last processed page."""
        summary = {reason.value: 0 for reason in RemovalReason}
        for classification in self.last_classifications:
            summary[classification.reason.value] += 1
        return summary


def clean_image(
    image: np.ndarray,
    analysis: Optional[AnalysisConfig] = None,
    cleanup: Optional[CleanupConfig] = None,
    overrides: Optional[Overrides] = None,
) -> np.ndarray:
    """Analyze and clean ``image`` in one call."""
    analyzed = analyze_image(image, analysis)
    return ImageCleaner(cleanup).process(analyzed, overrides=overrides)
