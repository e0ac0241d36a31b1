"""Pixel resampling and scale-to-dimension helpers"""

from typing import Tuple

from PIL import Image

from .errors import InvalidDimensions
from .request import ResamplingAlgorithm


# Pillow filter for each algorithm, fastest first
RESAMPLING_FILTERS = {
    ResamplingAlgorithm.NEAREST: Image.Resampling.NEAREST,
    ResamplingAlgorithm.BILINEAR: Image.Resampling.BILINEAR,
    ResamplingAlgorithm.BICUBIC: Image.Resampling.BICUBIC,
    ResamplingAlgorithm.LANCZOS: Image.Resampling.LANCZOS,
}


def resize(
    image: Image.Image,
    width: int,
    height: int,
    algorithm: ResamplingAlgorithm = ResamplingAlgorithm.LANCZOS,
) -> Image.Image:
    """
    Resize image to exact dimensions.

    No aspect-ratio logic happens here; callers compute the target size
    with scaled_dimensions().

    Args:
        image: PIL Image object
        width: Target width
        height: Target height
        algorithm: Resampling filter

    Returns:
        Resized PIL Image (the input is never modified)

    Raises:
        InvalidDimensions: If either dimension is zero or negative
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensions(f"Invalid dimensions: {width}x{height}")

    if image.size == (width, height):
        return image.copy()

    resample = RESAMPLING_FILTERS[ResamplingAlgorithm.parse(algorithm)]

    # Palette images resample poorly; expand first
    if image.mode == 'P':
        image = image.convert('RGBA' if 'transparency' in image.info else 'RGB')

    return image.resize((width, height), resample)


def scaled_dimensions(
    width: int,
    height: int,
    scale: float,
    maintain_aspect_ratio: bool = True,
    min_dimension: int = 16,
) -> Tuple[int, int]:
    """
    Calculate the trial size for a scale factor.

    Never upscales. The floor is capped at the original side, so images
    already smaller than min_dimension keep their size.

    Args:
        width: Original width
        height: Original height
        scale: Scale factor in (0, 1]
        maintain_aspect_ratio: Keep the original ratio when a side hits the floor
        min_dimension: Smallest allowed side in pixels

    Returns:
        Tuple of (width, height)
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensions(f"Invalid dimensions: {width}x{height}")
    if scale <= 0:
        raise InvalidDimensions(f"Scale must be positive, got {scale}")

    scale = min(scale, 1.0)

    if maintain_aspect_ratio:
        # Raise the scale until the shorter side reaches the floor
        short_side = min(width, height)
        floor = min(min_dimension, short_side)
        scale = max(scale, floor / short_side)
        new_w = max(1, min(width, int(round(width * scale))))
        new_h = max(1, min(height, int(round(height * scale))))
        return (new_w, new_h)

    new_w = max(min(min_dimension, width), int(round(width * scale)))
    new_h = max(min(min_dimension, height), int(round(height * scale)))
    return (min(width, new_w), min(height, new_h))
