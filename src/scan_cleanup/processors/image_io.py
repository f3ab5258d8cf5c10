"""Image I/O utilities for loading and saving page images.

Arrays handled by the rest of the package are RGB. OpenCV works in BGR, so
the conversion happens here and nowhere else.
"""

from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from ..exceptions import ImageLoadError, ImageSaveError, InvalidImageError

IMAGE_EXTENSIONS = [".png", ".jpg", ".jpeg", ".tif", ".tiff", ".webp", ".bmp"]


def to_rgb(image: np.ndarray, bgr: bool = False) -> np.ndarray:
    """Convert a greyscale, RGB or RGBA array to ``(H, W, 3)`` uint8 RGB.

    Alpha is dropped. 16-bit images are reduced to 8 bits per channel.

    Args:
        image: Input array
        bgr: Whether the channels are in OpenCV's BGR(A) order

    Returns:
        RGB array (a new array unless the input already qualifies)
    """
    if not isinstance(image, np.ndarray):
        raise InvalidImageError(f"Image must be a numpy array, got {type(image).__name__}")

    if image.dtype == np.uint16:
        image = (image >> 8).astype(np.uint8)
    elif image.dtype == bool:
        image = image.astype(np.uint8) * 255
    elif image.dtype != np.uint8:
        raise InvalidImageError(f"Unsupported image dtype {image.dtype}", shape=image.shape)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    if image.ndim == 3 and image.shape[2] == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2RGB)
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGB) if bgr else image
    if image.ndim == 3 and image.shape[2] == 4:
        code = cv2.COLOR_BGRA2RGB if bgr else cv2.COLOR_RGBA2RGB
        return cv2.cvtColor(image, code)

    raise InvalidImageError("Unsupported image shape", shape=image.shape)


def load_image(image_path: Path) -> np.ndarray:
    """Load an image file as an RGB array.

    Args:
        image_path: Path to the image file

    Returns:
        ``(H, W, 3)`` uint8 RGB array

    Raises:
        ImageLoadError: If the image cannot be read or decoded
    """
    image = cv2.imread(str(image_path), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ImageLoadError("Could not load image", image_path=str(image_path))
    try:
        return to_rgb(image, bgr=True)
    except InvalidImageError as e:
        raise ImageLoadError(e.message, image_path=str(image_path), **e.details) from e


def save_image(image: np.ndarray, output_path: Path, jpeg_quality: Optional[int] = None) -> None:
    """Save an RGB (or single-channel) image to file.

    Args:
        image: Image array to save
        output_path: Path where to save the image; the format follows the suffix
        jpeg_quality: Encoder quality for JPEG output

    Raises:
        ImageSaveError: If the image is empty or cannot be written
    """
    output_path = Path(output_path)

    if image is None or image.size == 0:
        raise ImageSaveError("Cannot save empty image", image_path=str(output_path))

    if image.dtype == bool:
        image = image.astype(np.uint8) * 255
    if image.ndim == 3 and image.shape[2] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)

    params = []
    if jpeg_quality is not None and output_path.suffix.lower() in (".jpg", ".jpeg"):
        params = [cv2.IMWRITE_JPEG_QUALITY, int(jpeg_quality)]

    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        written = cv2.imwrite(str(output_path), image, params)
    except cv2.error as e:
        raise ImageSaveError(f"OpenCV could not encode image: {e}",
                             image_path=str(output_path)) from e
    if not written:
        raise ImageSaveError("Could not write image", image_path=str(output_path))


def get_image_files(directory: Path) -> List[Path]:
    """Get all image files from directory.

    Args:
        directory: Directory to search for images

    Returns:
        List of paths to image files, sorted
    """
    image_files = set()  # Use set to avoid duplicates on case-insensitive filesystems

    for ext in IMAGE_EXTENSIONS:
        image_files.update(Path(directory).glob(f"*{ext}"))
        image_files.update(Path(directory).glob(f"*{ext.upper()}"))

    return sorted(image_files)
