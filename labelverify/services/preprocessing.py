"""Image geometry utilities: loading, dimensions, quarter-turn rotation, upload checks.

Rotation is counter-clockwise with the canvas expanded, so a 90 or 270 degree
turn of a W x H image yields an H x W image and nothing is cropped. Bounding
box back-transforms in ``bbox`` rely on this convention.
"""

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError
import io
from typing import Iterable, Tuple, Union
import logging

logger = logging.getLogger(__name__)

ImageInput = Union[bytes, np.ndarray]

_ROTATE_CODES = {
    90: cv2.ROTATE_90_COUNTERCLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_CLOCKWISE,
}


class ImageGeometry:
    """Geometry helper around OpenCV/Pillow."""

    def __init__(
        self,
        allowed_extensions: Iterable[str] = ("png", "jpg", "jpeg", "webp"),
        max_upload_size_mb: float = 5.0,
        min_dimension: int = 100,
        max_dimension: int = 10000,
    ):
        self.allowed_extensions = {e.lower() for e in allowed_extensions}
        self.max_upload_size_mb = max_upload_size_mb
        self.min_dimension = min_dimension
        self.max_dimension = max_dimension

    def load_image(self, image: ImageInput) -> np.ndarray:
        """Load image bytes into a BGR array. Arrays pass through unchanged."""
        if isinstance(image, np.ndarray):
            return image

        # Use PIL to handle various formats, then convert to OpenCV
        pil_image = Image.open(io.BytesIO(image))
        if pil_image.mode != "RGB":
            pil_image = pil_image.convert("RGB")

        array = np.array(pil_image)
        return cv2.cvtColor(array, cv2.COLOR_RGB2BGR)

    def dimensions(self, image: ImageInput) -> Tuple[int, int]:
        """Return ``(width, height)``."""
        if isinstance(image, np.ndarray):
            height, width = image.shape[:2]
            return int(width), int(height)
        with Image.open(io.BytesIO(image)) as pil_image:
            return pil_image.width, pil_image.height

    def rotate(self, image: ImageInput, degrees: int) -> np.ndarray:
        """
        Rotate counter-clockwise by a quarter-turn multiple.

        Raises:
            ValueError: If ``degrees`` is not one of 0, 90, 180, 270
        """
        array = self.load_image(image)
        degrees = degrees % 360
        if degrees == 0:
            return array
        if degrees not in _ROTATE_CODES:
            raise ValueError(f"Unsupported rotation angle: {degrees}")
        return cv2.rotate(array, _ROTATE_CODES[degrees])

    def get_image_info(self, image_bytes: bytes) -> dict:
        """Get basic image information without decoding pixels."""
        with Image.open(io.BytesIO(image_bytes)) as pil_image:
            return {
                "format": pil_image.format,
                "mode": pil_image.mode,
                "width": pil_image.width,
                "height": pil_image.height,
                "size_bytes": len(image_bytes),
                "size_mb": len(image_bytes) / (1024 * 1024),
            }

    def validate_image(self, image_bytes: bytes, filename: str) -> Tuple[bool, str]:
        """
        Validate an uploaded image.

        Returns:
            Tuple of (is_valid, error_message)
        """
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if ext not in self.allowed_extensions:
            allowed = ", ".join(sorted(self.allowed_extensions)).upper()
            return False, f"Invalid file type. Allowed formats: {allowed}"

        size_mb = len(image_bytes) / (1024 * 1024)
        if size_mb > self.max_upload_size_mb:
            return False, f"Image exceeds {self.max_upload_size_mb}MB upload limit. Please resize or compress."

        try:
            info = self.get_image_info(image_bytes)
        except (UnidentifiedImageError, OSError) as e:
            return False, f"Unable to read image: {str(e)}"

        if info["width"] < self.min_dimension or info["height"] < self.min_dimension:
            return False, (
                f"Image too small. Minimum dimensions: "
                f"{self.min_dimension}x{self.min_dimension} pixels."
            )
        if info["width"] > self.max_dimension or info["height"] > self.max_dimension:
            return False, (
                f"Image too large. Maximum dimensions: "
                f"{self.max_dimension}x{self.max_dimension} pixels."
            )

        return True, ""
