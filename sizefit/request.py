"""Compression request model and validation."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .errors import ValidationError
from .settings import EngineSettings


BYTES_PER_MB = 1024 * 1024

# Quality override bounds accepted from callers
MIN_QUALITY_OVERRIDE = 10
MAX_QUALITY_OVERRIDE = 95


class OutputFormat(str, Enum):
    JPEG = "JPEG"
    PNG = "PNG"
    WEBP = "WEBP"

    @classmethod
    def parse(cls, value: Union[str, "OutputFormat"]) -> "OutputFormat":
        """Parse a format name case-insensitively (``jpg`` is accepted)."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().upper()
        if name == "JPG":
            name = "JPEG"
        try:
            return cls(name)
        except ValueError:
            allowed = ", ".join(f.value for f in cls)
            raise ValidationError(
                f"Unsupported output format: {name}. Use one of: {allowed}"
            ) from None


class CompressionStrategy(str, Enum):
    AUTO = "auto"
    LOSSY = "lossy"
    LOSSLESS = "lossless"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: Union[str, "CompressionStrategy"]) -> "CompressionStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError(
                f"Unknown compression strategy: {value}. Use one of: {allowed}"
            ) from None


class ResamplingAlgorithm(str, Enum):
    LANCZOS = "lanczos"
    BICUBIC = "bicubic"
    BILINEAR = "bilinear"
    NEAREST = "nearest"

    @classmethod
    def parse(cls, value: Union[str, "ResamplingAlgorithm"]) -> "ResamplingAlgorithm":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(a.value for a in cls)
            raise ValidationError(
                f"Unknown resampling algorithm: {value}. Use one of: {allowed}"
            ) from None


@dataclass(frozen=True)
class CompressionRequest:
    """Shared configuration for every image in a batch.

    Attributes:
        target_size_bytes: Upper bound for each encoded image
        quality_override: Fixed encoder quality (10-95), skips the search
        output_format: Output format for every image
        maintain_aspect_ratio: Keep the source ratio when downscaling
        compression_strategy: Which search path to run
        preserve_metadata: Carry EXIF/ICC/DPI into the output
        resampling_algorithm: Filter used when downscaling
        progressive_jpeg: Progressive encoding (JPEG only)
        optimize_png: Extra optimizer pass (PNG only)
    """
    target_size_bytes: int
    quality_override: Optional[int] = None
    output_format: OutputFormat = OutputFormat.JPEG
    maintain_aspect_ratio: bool = True
    compression_strategy: CompressionStrategy = CompressionStrategy.AUTO
    preserve_metadata: bool = False
    resampling_algorithm: ResamplingAlgorithm = ResamplingAlgorithm.LANCZOS
    progressive_jpeg: bool = True
    optimize_png: bool = True

    def __post_init__(self):
        # Normalize string values so callers can pass plain names
        object.__setattr__(self, 'output_format', OutputFormat.parse(self.output_format))
        object.__setattr__(
            self, 'compression_strategy', CompressionStrategy.parse(self.compression_strategy)
        )
        object.__setattr__(
            self, 'resampling_algorithm', ResamplingAlgorithm.parse(self.resampling_algorithm)
        )
        if self.target_size_bytes <= 0:
            raise ValidationError(
                f"target_size_bytes must be > 0, got {self.target_size_bytes}"
            )

    @classmethod
    def from_mb(cls, target_size_mb: float, **kwargs) -> "CompressionRequest":
        """Build a request from a target size in megabytes."""
        return cls(target_size_bytes=int(target_size_mb * BYTES_PER_MB), **kwargs)

    @property
    def target_size_mb(self) -> float:
        return self.target_size_bytes / BYTES_PER_MB


def validate_request(
    request: CompressionRequest,
    settings: Optional[EngineSettings] = None,
) -> None:
    """Check request bounds before a batch is dispatched.

    Args:
        request: Request to validate
        settings: EngineSettings providing the accepted target range

    Raises:
        ValidationError: If the target size or quality override is out of range
    """
    if settings is None:
        settings = EngineSettings()

    target_mb = request.target_size_mb
    # Small epsilon: from_mb() truncates to whole bytes
    if target_mb < settings.min_target_mb - 1e-6 or target_mb > settings.max_target_mb:
        raise ValidationError(
            f"Target size must be between {settings.min_target_mb} and "
            f"{settings.max_target_mb} MB, got {target_mb:.3f} MB"
        )

    quality = request.quality_override
    if quality is not None:
        if isinstance(quality, bool) or not isinstance(quality, int):
            raise ValidationError(f"Quality must be an integer, got {quality!r}")
        if not MIN_QUALITY_OVERRIDE <= quality <= MAX_QUALITY_OVERRIDE:
            raise ValidationError(
                f"Quality must be between {MIN_QUALITY_OVERRIDE} and "
                f"{MAX_QUALITY_OVERRIDE}, got {quality}"
            )
