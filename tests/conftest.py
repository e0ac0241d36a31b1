"""Shared fixtures: synthetic images encoded in memory."""

import logging
from io import BytesIO

import numpy as np
import pytest
from PIL import Image, ImageCms

from sizefit.compression.encoders import BaseEncoder
from sizefit.logger import LOGGER_NAME


def noise_image(width, height, seed=0, mode='RGB'):
    """Uniform noise; compresses poorly, like fine photographic detail."""
    rng = np.random.default_rng(seed)
    channels = len(mode)
    pixels = rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8)
    if channels == 1:
        pixels = pixels[:, :, 0]
    return Image.fromarray(pixels)


def gradient_image(width, height, mode='RGB'):
    """Smooth gradient; compresses well."""
    x = np.linspace(0, 255, width, dtype=np.float32)
    y = np.linspace(0, 255, height, dtype=np.float32)
    xx, yy = np.meshgrid(x, y)
    planes = [xx, yy, (xx + yy) / 2, np.full_like(xx, 128)][:len(mode)]
    pixels = np.stack(planes, axis=-1).astype(np.uint8)
    return Image.fromarray(pixels)


def encode(image, fmt='JPEG', **kwargs):
    buffer = BytesIO()
    image.save(buffer, format=fmt, **kwargs)
    return buffer.getvalue()


def srgb_profile_bytes():
    return ImageCms.ImageCmsProfile(ImageCms.createProfile('sRGB')).tobytes()


def make_exif(orientation=1):
    exif = Image.Exif()
    exif[0x010F] = "TestCam"      # Make
    exif[0x0110] = "Model 1"      # Model
    exif[0x0112] = orientation    # Orientation
    return exif


class SizeTableEncoder(BaseEncoder):
    """Deterministic fake codec: size depends only on pixel count and quality.

    Lossy size is ``pixels * quality // 100 + 100``; lossless size is
    ``pixels * lossless_ratio + 100``.
    """

    format_name = "FAKE"
    file_extension = ".fake"

    def __init__(self, lossless_ratio=0.5, supports_quality=True):
        self.lossless_ratio = lossless_ratio
        self.supports_quality = supports_quality
        self.calls = []

    def save_kwargs(self, options):
        return {}

    def size_for(self, width, height, options):
        pixels = width * height
        if options.lossless or not self.supports_quality:
            return int(pixels * self.lossless_ratio) + 100
        return pixels * options.quality // 100 + 100

    def encode(self, image, options):
        self.calls.append((image.size, options.quality, options.lossless))
        return b'\0' * self.size_for(image.width, image.height, options)


@pytest.fixture
def noise_jpeg():
    """512x384 noisy JPEG at quality 95."""
    return encode(noise_image(512, 384), 'JPEG', quality=95)


@pytest.fixture
def small_jpeg():
    return encode(gradient_image(128, 96), 'JPEG', quality=90)


@pytest.fixture
def alpha_png():
    image = gradient_image(96, 64, mode='RGBA')
    return encode(image, 'PNG')


@pytest.fixture
def gradient_png():
    return encode(gradient_image(64, 48), 'PNG')


@pytest.fixture
def metadata_jpeg():
    """JPEG carrying EXIF, an sRGB ICC profile and 300 DPI."""
    return encode(
        noise_image(160, 120, seed=3),
        'JPEG',
        quality=90,
        exif=make_exif(),
        icc_profile=srgb_profile_bytes(),
        dpi=(300, 300),
    )


@pytest.fixture
def rotated_jpeg():
    """40x20 JPEG tagged with orientation 6 (displayed as 20x40)."""
    return encode(gradient_image(40, 20), 'JPEG', quality=90, exif=make_exif(orientation=6))


@pytest.fixture
def corrupt_bytes():
    return b"this is not an image" * 20


@pytest.fixture
def truncated_jpeg(noise_jpeg):
    return noise_jpeg[:len(noise_jpeg) // 3]


@pytest.fixture
def size_encoder():
    return SizeTableEncoder()


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo configure_logging() so caplog keeps seeing package records."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
