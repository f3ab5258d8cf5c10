"""Scan Cleanup Processors Module.

Image processing components for scan cleanup. Background classification,
grapheme labeling, noise classification and rendering each live in their
own module; the analyzer and cleaner processors chain them.
"""

# Base processor
from .base import BaseProcessor, validate_image

# Image I/O
from .image_io import (
    load_image,
    save_image,
    get_image_files,
    to_rgb,
)

# Background classification
from .background import (
    pixel_values,
    darkest_pixel_within,
    darkest_neighbourhood,
    classify_background,
)

# Grapheme labeling
from .labeling import (
    NO_GRAPHEME,
    Grapheme,
    AnalyzedImage,
    label_graphemes,
)

# Noise classification
from .noise import (
    Override,
    Overrides,
    RemovalReason,
    Classification,
    is_near,
    is_isolated,
    is_inside_margins,
    search_order,
    classify_grapheme,
    classify_graphemes,
)

# Rendering
from .render import (
    PixelClass,
    render_cleaned,
    render_classification_map,
    render_overlay,
)

# Processors
from .analysis import ImageAnalyzer, analyze_image
from .cleaning import ImageCleaner, clean_image

__all__ = [
    # Base
    "BaseProcessor",
    "validate_image",

    # Image I/O
    "load_image",
    "save_image",
    "get_image_files",
    "to_rgb",

    # Background classification
    "pixel_values",
    "darkest_pixel_within",
    "darkest_neighbourhood",
    "classify_background",

    # Grapheme labeling
    "NO_GRAPHEME",
    "Grapheme",
    "AnalyzedImage",
    "label_graphemes",

    # Noise classification
    "Override",
    "Overrides",
    "RemovalReason",
    "Classification",
    "is_near",
    "is_isolated",
    "is_inside_margins",
    "search_order",
    "classify_grapheme",
    "classify_graphemes",

    # Rendering
    "PixelClass",
    "render_cleaned",
    "render_classification_map",
    "render_overlay",

    # Processors
    "ImageAnalyzer",
    "analyze_image",
    "ImageCleaner",
    "clean_image",
]
