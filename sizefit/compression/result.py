"""Compression result dataclasses with analytics."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..request import BYTES_PER_MB


# Prefix of the recommendation attached when the byte target was not met
UNREACHABLE_MARKER = "target unreachable"


@dataclass(frozen=True)
class EncoderOptions:
    """Options for format-specific encoding.

    Attributes:
        quality: Compression quality (1-100), None for formats without one
        lossless: Use the format's lossless mode (WebP)
        progressive: Enable progressive encoding (JPEG)
        optimize: Extra optimizer pass (JPEG Huffman tables, PNG)
        chroma_subsampling: JPEG chroma mode (0=4:4:4, 1=4:2:2, 2=4:2:0)
        compress_level: zlib level for PNG (0-9)
        method: WebP effort (0-6, higher = slower/smaller)
        save_params: Extra Pillow save() keyword arguments (metadata)
    """
    quality: Optional[int] = 85
    lossless: bool = False
    progressive: bool = False
    optimize: bool = True
    chroma_subsampling: int = 2
    compress_level: int = 9
    method: int = 4
    save_params: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        """Validate options."""
        if self.quality is not None and not 1 <= self.quality <= 100:
            raise ValueError(f"quality must be 1-100, got {self.quality}")
        if self.chroma_subsampling not in (0, 1, 2):
            raise ValueError(f"chroma_subsampling must be 0, 1, or 2")
        if not 0 <= self.compress_level <= 9:
            raise ValueError(f"compress_level must be 0-9, got {self.compress_level}")
        if not 0 <= self.method <= 6:
            raise ValueError(f"method must be 0-6, got {self.method}")

    def cache_key(self) -> Tuple:
        """Parameters that affect the encoded bytes, metadata excluded."""
        return (
            self.quality,
            self.lossless,
            self.progressive,
            self.optimize,
            self.chroma_subsampling,
            self.compress_level,
            self.method,
        )


@dataclass(frozen=True)
class CompressionAnalytics:
    """How a result was reached.

    Attributes:
        algorithm_used: Search path and codec, e.g. "jpeg-quality-bisection"
        iterations_required: Trial encodes performed
        quality_achieved: Final encoder quality (None for lossless output)
        processing_strategy: lossy, lossless, hybrid-lossless or hybrid-lossy-fallback
        size_reduction_percentage: Saving relative to the original file
        optimization_notes: Human-readable notes on what was applied
    """
    algorithm_used: str
    iterations_required: int
    quality_achieved: Optional[int]
    processing_strategy: str
    size_reduction_percentage: float
    optimization_notes: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'algorithm_used': self.algorithm_used,
            'iterations_required': self.iterations_required,
            'quality_achieved': self.quality_achieved,
            'size_reduction_percentage': self.size_reduction_percentage,
            'processing_strategy': self.processing_strategy,
            'optimization_notes': list(self.optimization_notes),
        }


@dataclass(frozen=True)
class CompressionResult:
    """Result of compressing one image.

    Attributes:
        encoded_bytes: Final encoded image, metadata included
        width: Final width
        height: Final height
        format_used: Output format name (JPEG, PNG, WEBP)
        original_size_bytes: Size of the input file
        achieved_size_bytes: Size of encoded_bytes
        target_size_bytes: Requested upper bound
        analytics: Search analytics
        recommendations: Advisory strings for the caller
        metadata: Metadata carried into the output, if preserved
    """
    encoded_bytes: bytes
    width: int
    height: int
    format_used: str
    original_size_bytes: int
    achieved_size_bytes: int
    target_size_bytes: int
    analytics: CompressionAnalytics
    recommendations: Tuple[str, ...] = ()
    metadata: Optional[Any] = None

    @property
    def dimensions(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def compression_ratio(self) -> float:
        """Original size divided by achieved size."""
        if self.achieved_size_bytes <= 0:
            return 0.0
        return self.original_size_bytes / self.achieved_size_bytes

    @property
    def target_reached(self) -> bool:
        return self.achieved_size_bytes <= self.target_size_bytes

    @property
    def unreachable(self) -> bool:
        """True when the result carries the unreachable-target marker."""
        return any(r.startswith(UNREACHABLE_MARKER) for r in self.recommendations)

    @property
    def original_size_mb(self) -> float:
        return self.original_size_bytes / BYTES_PER_MB

    @property
    def achieved_size_mb(self) -> float:
        """Get final size in megabytes."""
        return self.achieved_size_bytes / BYTES_PER_MB
