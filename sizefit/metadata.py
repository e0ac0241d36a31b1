"""EXIF, color-profile and DPI handling.

Metadata is read once from the decoded source. When it is dropped the
pixels are auto-oriented first so stripping the EXIF orientation tag does
not leave the image rotated. When it is kept, trial encodes run without it
and it is written into the chosen encoding only; its size is measured once
and charged to every trial as a constant offset.
"""

from dataclasses import dataclass, field, replace
from io import BytesIO
from typing import Any, Dict, Optional, Tuple
import logging

from PIL import Image, ImageCms, ImageOps
from PIL.ExifTags import TAGS
from PIL.PngImagePlugin import PngInfo

from .compression.encoders import BaseEncoder
from .compression.result import EncoderOptions


logger = logging.getLogger(__name__)

# Side of the proxy image used to measure metadata overhead
_OVERHEAD_PROXY_SIZE = 16

# Source info keys worth reporting as format-specific fields
_FORMAT_INFO_KEYS = ('jfif', 'jfif_version', 'progressive', 'progression', 'interlace',
                     'gamma', 'loop', 'duration', 'compression', 'adobe')

# Formats Pillow can write each metadata kind into
_EXIF_FORMATS = {'JPEG', 'PNG', 'WEBP'}
_ICC_FORMATS = {'JPEG', 'PNG', 'WEBP'}
_DPI_FORMATS = {'JPEG', 'PNG'}


@dataclass(frozen=True)
class Metadata:
    """Metadata carried by a source image.

    Attributes:
        exif: Raw EXIF block
        icc_profile: Raw ICC profile
        dpi: Horizontal and vertical resolution
        exif_data: Readable EXIF tags (name -> value)
        color_profile: ICC profile description or color mode
        format_specific: Source-format fields (PNG text, JFIF flags, ...)
    """
    exif: Optional[bytes] = None
    icc_profile: Optional[bytes] = None
    dpi: Optional[Tuple[float, float]] = None
    exif_data: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    color_profile: Optional[str] = None
    format_specific: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @property
    def is_empty(self) -> bool:
        return not (self.exif or self.icc_profile or self.dpi or self.text_chunks)

    @property
    def text_chunks(self) -> Dict[str, str]:
        return self.format_specific.get('text', {})

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe summary for reports."""
        return {
            'exif_data': self.exif_data or None,
            'color_profile': self.color_profile,
            'dpi': list(self.dpi) if self.dpi else None,
            'format_specific': self.format_specific or None,
        }


def _json_safe(value: Any) -> Any:
    """Convert EXIF values into JSON-serializable types."""
    if isinstance(value, bytes):
        try:
            return value.decode('utf-8').rstrip('\x00')
        except UnicodeDecodeError:
            return f"<{len(value)} bytes>"
    if isinstance(value, (tuple, list)):
        return [_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (int, float, str, bool)) or value is None:
        return value
    # IFDRational and friends
    try:
        return float(value)
    except (TypeError, ValueError):
        return str(value)


def _read_exif(image: Image.Image) -> Tuple[Optional[bytes], Dict[str, Any]]:
    exif = image.getexif()
    if not exif:
        return image.info.get('exif'), {}

    readable = {}
    for tag_id, value in exif.items():
        tag = TAGS.get(tag_id, str(tag_id))
        readable[tag] = _json_safe(value)
    return exif.tobytes(), readable


def _describe_profile(icc_profile: Optional[bytes], mode: str) -> str:
    if not icc_profile:
        return mode
    try:
        profile = ImageCms.ImageCmsProfile(BytesIO(icc_profile))
        description = ImageCms.getProfileDescription(profile).strip()
    except (OSError, ImageCms.PyCMSError) as e:
        logger.debug(f"Could not parse ICC profile: {e}")
        return f"embedded ICC ({len(icc_profile)} bytes)"
    return description or f"embedded ICC ({len(icc_profile)} bytes)"


def extract(image: Image.Image) -> Metadata:
    """Read metadata from a decoded image.

    Args:
        image: Decoded source image

    Returns:
        Metadata (possibly empty)
    """
    exif_bytes, exif_data = _read_exif(image)
    icc_profile = image.info.get('icc_profile') or None

    dpi = image.info.get('dpi')
    if dpi is not None:
        dpi = (float(dpi[0]), float(dpi[1]))

    format_specific: Dict[str, Any] = {}
    if image.format:
        format_specific['source_format'] = image.format
    for key in _FORMAT_INFO_KEYS:
        if key in image.info:
            format_specific[key] = _json_safe(image.info[key])
    text = getattr(image, 'text', None)
    if text:
        format_specific['text'] = {str(k): str(v) for k, v in text.items()}

    return Metadata(
        exif=exif_bytes or None,
        icc_profile=icc_profile,
        dpi=dpi,
        exif_data=exif_data,
        color_profile=_describe_profile(icc_profile, image.mode),
        format_specific=format_specific,
    )


def strip(image: Image.Image, auto_orient: bool = True) -> Image.Image:
    """Return a copy of the image with all metadata removed.

    Args:
        image: Source image
        auto_orient: Apply the EXIF orientation to the pixels first. Turn
            off when the orientation tag is reattached to the output.
    """
    oriented = ImageOps.exif_transpose(image) if auto_orient else None
    if oriented is None or oriented is image:
        oriented = image.copy()
    oriented.info = {
        key: value for key, value in oriented.info.items()
        if key == 'transparency'
    }
    return oriented


def reattach_params(metadata: Optional[Metadata], format_name: str) -> Dict[str, Any]:
    """Pillow save() arguments that embed metadata in the given format.

    Metadata kinds the format cannot carry are skipped.
    """
    if metadata is None:
        return {}

    format_name = format_name.upper()
    params: Dict[str, Any] = {}
    if metadata.exif and format_name in _EXIF_FORMATS:
        params['exif'] = metadata.exif
    if metadata.icc_profile and format_name in _ICC_FORMATS:
        params['icc_profile'] = metadata.icc_profile
    if metadata.dpi and format_name in _DPI_FORMATS:
        params['dpi'] = metadata.dpi
    if metadata.text_chunks and format_name == 'PNG':
        info = PngInfo()
        for key, value in metadata.text_chunks.items():
            info.add_text(key, value)
        params['pnginfo'] = info
    return params


def with_metadata(options: EncoderOptions, metadata: Optional[Metadata],
                  format_name: str) -> EncoderOptions:
    """Copy of options that also embeds metadata."""
    params = dict(options.save_params)
    params.update(reattach_params(metadata, format_name))
    return replace(options, save_params=params)


def reattach(
    image: Image.Image,
    encoder: BaseEncoder,
    options: EncoderOptions,
    metadata: Optional[Metadata],
) -> bytes:
    """Encode the chosen trial again with metadata embedded.

    Encoder parameters are identical to the chosen trial, so the pixel data
    matches it exactly; only the metadata segments are added.
    """
    return encoder.encode(image, with_metadata(options, metadata, encoder.format_name))


def overhead(
    metadata: Optional[Metadata],
    encoder: BaseEncoder,
    options: EncoderOptions,
    mode: str = 'RGB',
) -> int:
    """Bytes metadata adds to an encoding in this format.

    Measured on a small proxy image so the offset is constant across trials.
    """
    if metadata is None or metadata.is_empty:
        return 0
    if not reattach_params(metadata, encoder.format_name):
        return 0

    proxy = Image.new(mode, (_OVERHEAD_PROXY_SIZE, _OVERHEAD_PROXY_SIZE))
    bare = encoder.probe_size(proxy, options)
    dressed = encoder.probe_size(proxy, with_metadata(options, metadata, encoder.format_name))
    return max(0, dressed - bare)
