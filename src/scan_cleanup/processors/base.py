"""Base processor class and common utilities for scan cleanup processors."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

from ..exceptions import InvalidImageError


def validate_image(image: Any) -> None:
    """Check that ``image`` is a non-empty ``(H, W, 3)`` uint8 RGB array.

    Raises:
        InvalidImageError: For anything the core cannot process.
    """
    if image is None:
        raise InvalidImageError("Image cannot be None")
    if not isinstance(image, np.ndarray):
        raise InvalidImageError(f"Image must be a numpy array, got {type(image).__name__}")
    if image.ndim != 3 or image.shape[2] != 3:
        raise InvalidImageError("Image must have shape (height, width, 3)", shape=image.shape)
    if image.dtype != np.uint8:
        raise InvalidImageError(f"Image must be uint8, got {image.dtype}", shape=image.shape)
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise InvalidImageError("Image must have non-zero width and height", shape=image.shape)


class BaseProcessor(ABC):
    """Base class for all image processors."""

    def __init__(self, config: Optional[Any] = None):
        """Initialize processor with optional configuration."""
        self.config = config
        self.debug_images = {}
        self.save_debug = False

    @abstractmethod
    def process(self, image: np.ndarray, **kwargs) -> Any:
        """Process an image. Must be implemented by subclasses."""
        pass

    def validate_image(self, image: np.ndarray) -> None:
        """Validate that the input is a valid RGB image."""
        validate_image(image)

    def save_debug_image(self, name: str, image: np.ndarray) -> None:
        """Store a debug image for later saving."""
        if self.save_debug:
            self.debug_images[name] = image

    def get_debug_images(self) -> Dict[str, np.ndarray]:
        """Get all stored debug images."""
        return self.debug_images

    def clear_debug_images(self) -> None:
        """Clear stored debug images."""
        self.debug_images = {}

    def save_debug_images_to_dir(self, debug_dir: Path, prefix: str = "") -> None:
        """Save all debug images to the specified directory as PNG."""
        from .image_io import save_image

        if not self.debug_images:
            return

        for name, image in self.debug_images.items():
            filename = f"{prefix}_{name}.png" if prefix else f"{name}.png"
            save_image(image, Path(debug_dir) / filename)
