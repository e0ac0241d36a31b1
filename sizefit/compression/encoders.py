"""Format-specific image encoders and the input decoder.

Provides encoders for JPEG, PNG and WebP. Every encoder writes to an
in-memory buffer; probe_size() encodes and discards so the reported size
always matches what encode() produces for the same options.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from io import BytesIO
from typing import Dict, List
import logging

from PIL import Image, UnidentifiedImageError

from ..errors import CorruptInput, DecodeError, EncodeFailure, UnsupportedFormat
from .result import EncoderOptions


logger = logging.getLogger(__name__)

# Formats accepted as input. Output is limited to the encoder registry.
DECODABLE_FORMATS = {'JPEG', 'PNG', 'WEBP', 'GIF', 'BMP', 'TIFF', 'MPO'}

# Highest lossy quality the search may use; JPEG's "lossless" pass uses it
MAX_SEARCH_QUALITY = 95


class BaseEncoder(ABC):
    """Abstract base class for format-specific encoders."""

    format_name: str
    supports_quality: bool = True
    supports_transparency: bool = False
    file_extension: str

    @abstractmethod
    def save_kwargs(self, options: EncoderOptions) -> dict:
        """Pillow save() arguments for the given options."""

    def encode(self, image: Image.Image, options: EncoderOptions) -> bytes:
        """Encode image to bytes.

        Args:
            image: PIL Image to encode
            options: Encoding options

        Returns:
            Encoded image bytes

        Raises:
            EncodeFailure: If the codec rejects the image or options
        """
        image = self.prepare_image(image)
        kwargs = self.save_kwargs(options)
        kwargs.update(options.save_params)

        buffer = BytesIO()
        try:
            image.save(buffer, format=self.format_name, **kwargs)
        except (OSError, ValueError, SyntaxError) as e:
            raise EncodeFailure(
                f"{self.format_name} encode failed for {image.width}x{image.height}: {e}"
            ) from e
        return buffer.getvalue()

    def probe_size(self, image: Image.Image, options: EncoderOptions) -> int:
        """Size in bytes encode() would produce for these options."""
        return len(self.encode(image, options))

    def lossless_options(self, base: EncoderOptions) -> EncoderOptions:
        """Strongest lossless pass available for this format."""
        return replace(base, quality=None, lossless=True)

    def prepare_image(self, image: Image.Image) -> Image.Image:
        """Prepare image for encoding (mode conversion, etc).

        Args:
            image: Source image

        Returns:
            Image ready for encoding
        """
        return image


class JpegEncoder(BaseEncoder):
    """JPEG encoder with progressive and Huffman-optimize support."""

    format_name = "JPEG"
    supports_quality = True
    supports_transparency = False
    file_extension = ".jpg"

    def save_kwargs(self, options: EncoderOptions) -> dict:
        return {
            'quality': options.quality if options.quality is not None else MAX_SEARCH_QUALITY,
            'optimize': options.optimize,
            'progressive': options.progressive,
            'subsampling': options.chroma_subsampling,
        }

    def lossless_options(self, base: EncoderOptions) -> EncoderOptions:
        # Baseline JPEG has no lossless mode: top search quality, full chroma
        return replace(base, quality=MAX_SEARCH_QUALITY, lossless=True, chroma_subsampling=0)

    def prepare_image(self, image: Image.Image) -> Image.Image:
        """Convert to RGB for JPEG."""
        if image.mode in ('RGBA', 'LA') or (image.mode == 'P' and 'transparency' in image.info):
            # Composite on white background
            rgba = image.convert('RGBA')
            background = Image.new('RGB', image.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[3])
            return background
        elif image.mode not in ('RGB', 'L', 'CMYK'):
            return image.convert('RGB')
        return image


class WebpEncoder(BaseEncoder):
    """WebP encoder with lossy and lossless support."""

    format_name = "WEBP"
    supports_quality = True
    supports_transparency = True
    file_extension = ".webp"

    def save_kwargs(self, options: EncoderOptions) -> dict:
        if options.lossless:
            # In lossless mode quality is the compression effort
            return {'lossless': True, 'quality': 100, 'method': 6}
        return {
            'quality': options.quality if options.quality is not None else MAX_SEARCH_QUALITY,
            'method': options.method,
        }

    def prepare_image(self, image: Image.Image) -> Image.Image:
        """Prepare image for WebP encoding."""
        if image.mode == 'P':
            # Check if palette has transparency
            if 'transparency' in image.info:
                return image.convert('RGBA')
            return image.convert('RGB')
        elif image.mode == 'LA':
            return image.convert('RGBA')
        elif image.mode not in ('RGB', 'RGBA'):
            return image.convert('RGB')
        return image


class PngEncoder(BaseEncoder):
    """PNG encoder (lossless, no quality setting)."""

    format_name = "PNG"
    supports_quality = False
    supports_transparency = True
    file_extension = ".png"

    def save_kwargs(self, options: EncoderOptions) -> dict:
        return {
            'optimize': options.optimize,
            'compress_level': options.compress_level,
        }

    def lossless_options(self, base: EncoderOptions) -> EncoderOptions:
        return replace(base, quality=None, lossless=True, compress_level=9)

    def prepare_image(self, image: Image.Image) -> Image.Image:
        if image.mode == 'CMYK':
            return image.convert('RGB')
        return image


# Encoder registry
_ENCODERS: Dict[str, BaseEncoder] = {
    'JPEG': JpegEncoder(),
    'WEBP': WebpEncoder(),
    'PNG': PngEncoder(),
}


def get_encoder(format_name) -> BaseEncoder:
    """Get encoder for format.

    Args:
        format_name: Format name or OutputFormat (JPEG, PNG, WEBP)

    Returns:
        Encoder instance

    Raises:
        UnsupportedFormat: If no encoder is registered for the format
    """
    name = getattr(format_name, 'value', format_name)
    encoder = _ENCODERS.get(str(name).upper())
    if encoder is None:
        raise UnsupportedFormat(
            f"Unsupported output format: {name}. Available: {get_available_formats()}"
        )
    return encoder


def get_available_formats() -> List[str]:
    """Get list of available format names.

    Returns:
        List of format names that can be used
    """
    return list(_ENCODERS.keys())


def decode_image(data: bytes) -> Image.Image:
    """Decode raw bytes into a fully loaded PIL Image.

    Args:
        data: Encoded image bytes

    Returns:
        Loaded PIL Image (format attribute preserved)

    Raises:
        CorruptInput: If the bytes are not a readable image
        UnsupportedFormat: If the format is outside DECODABLE_FORMATS
        DecodeError: If the image exceeds the decompression-bomb limit
    """
    if not data:
        raise CorruptInput("Input is empty")

    try:
        image = Image.open(BytesIO(data))
        source_format = image.format
        if source_format not in DECODABLE_FORMATS:
            raise UnsupportedFormat(f"Unsupported input format: {source_format}")
        image.load()
    except Image.DecompressionBombError as e:
        raise DecodeError(f"Image too large to decode safely: {e}") from e
    except UnidentifiedImageError as e:
        raise CorruptInput("Input is not a recognized image") from e
    except (OSError, SyntaxError, ValueError) as e:
        raise CorruptInput(f"Input image is corrupt: {e}") from e

    # load() can drop the format attribute for some plugins
    if image.format is None:
        image.format = source_format

    logger.debug(f"Decoded {source_format} {image.width}x{image.height} mode={image.mode}")
    return image
