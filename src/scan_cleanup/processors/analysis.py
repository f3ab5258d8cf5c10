"""Page analysis: background classification followed by grapheme labeling."""

import logging
from typing import Optional

import numpy as np

from ..config.models import AnalysisConfig
from .base import BaseProcessor
from .background import classify_background
from .labeling import AnalyzedImage, label_graphemes

logger = logging.getLogger(__name__)


class ImageAnalyzer(BaseProcessor):
    """Processor that segments a page into background and graphemes."""

    def __init__(self, config: Optional[AnalysisConfig] = None):
        super().__init__(config or AnalysisConfig())

    def process(self, image: np.ndarray, **kwargs) -> AnalyzedImage:
        """Analyze an RGB page image.

        Args:
            image: ``(H, W, 3)`` uint8 RGB image

        Returns:
            Analyzed image with graphemes and the pixel index map

        Raises:
            InvalidImageError: If the image is empty or not RGB uint8
        """
        self.validate_image(image)
        self.clear_debug_images()

        background = classify_background(
            image,
            off_white_threshold=self.config.off_white_threshold,
            lightness_threshold=self.config.lightness_threshold,
            lightness_distance=self.config.lightness_distance,
        )
        self.save_debug_image("background_mask", ~background)

        analyzed = label_graphemes(
            image,
            background,
            connectivity=self.config.connectivity,
            backend=self.config.backend,
        )
        logger.debug("Analysis found %d graphemes", len(analyzed.graphemes))
        return analyzed


def analyze_image(image: np.ndarray, config: Optional[AnalysisConfig] = None) -> AnalyzedImage:
    """Segment ``image`` with ``config`` (defaults if None)."""
    return ImageAnalyzer(config).process(image)
