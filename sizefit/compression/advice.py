"""Recommendations attached to compression results.

Looks at how a search ended and the formats involved, and suggests what
the caller could change to get a better result.
"""

from typing import List, Optional

from ..request import BYTES_PER_MB
from .engine import SearchOutcome, suggest_dimensions
from .result import UNREACHABLE_MARKER


# Typical compression ratios relative to JPEG at same quality
# Based on empirical testing with photographic content
COMPRESSION_RATIOS = {
    'WEBP': 0.75,  # WebP typically 25% smaller than JPEG
    'JPEG': 1.0,   # Baseline
    'PNG': 3.0,    # PNG much larger for photos (lossless)
}

# Format descriptions for messages
FORMAT_DESCRIPTIONS = {
    'WEBP': "good compression, wide support",
    'JPEG': "universal compatibility",
    'PNG': "lossless, large files",
}

# Below this quality lossy artifacts are usually visible
LOW_QUALITY_THRESHOLD = 40

# Source formats that normally hold photographic content
PHOTO_SOURCE_FORMATS = {'JPEG', 'MPO', 'WEBP'}


def _mb(size_bytes: int) -> str:
    return f"{size_bytes / BYTES_PER_MB:.3f} MB"


def _better_format(current: str) -> Optional[str]:
    """Smallest-output format other than the current one."""
    ratio = COMPRESSION_RATIOS.get(current)
    if ratio is None:
        return None
    candidates = [f for f, r in COMPRESSION_RATIOS.items() if r < ratio]
    if not candidates:
        return None
    return min(candidates, key=lambda f: COMPRESSION_RATIOS[f])


def build_recommendations(
    outcome: SearchOutcome,
    output_format: str,
    target_bytes: int,
    original_size: int,
    source_format: Optional[str] = None,
    quality_override: Optional[int] = None,
    min_dimension: int = 16,
    achieved_size: Optional[int] = None,
) -> List[str]:
    """Advisory strings for one result.

    The first entry starts with UNREACHABLE_MARKER when the target was not met.

    Args:
        outcome: Finished search
        output_format: Output format name
        target_bytes: Requested byte budget
        original_size: Size of the source file
        source_format: Detected source format
        quality_override: Fixed quality the caller asked for, if any
        min_dimension: Smallest side the engine may produce
        achieved_size: Final output size when it differs from the trial
            (metadata reattached after the search)

    Returns:
        List of recommendation strings (possibly empty)
    """
    recommendations: List[str] = []
    probe = outcome.probe
    width, height = probe.dimensions
    output_format = output_format.upper()

    size = achieved_size if achieved_size is not None else probe.size

    if not outcome.target_reached:
        if probe.lossless:
            setting = "lossless encoding"
        else:
            setting = f"quality {probe.quality}"
        recommendations.append(
            f"{UNREACHABLE_MARKER}: closest result is {_mb(size)} at {setting} "
            f"and {width}x{height}; reduce target size tolerance or allow further downscaling"
        )
        if quality_override is not None and not probe.lossless:
            recommendations.append(
                f"remove the quality override ({quality_override}) to let the search "
                f"lower quality until the target fits"
            )
        suggested = suggest_dimensions(width, height, target_bytes, size, min_dimension)
        if suggested != (width, height):
            recommendations.append(
                f"resize to about {suggested[0]}x{suggested[1]} to fit {_mb(target_bytes)}"
            )
        alternative = _better_format(output_format)
        if alternative is not None:
            recommendations.append(
                f"try {alternative} output ({FORMAT_DESCRIPTIONS[alternative]}); it is typically "
                f"{int((1 - COMPRESSION_RATIOS[alternative] / COMPRESSION_RATIOS[output_format]) * 100)}% "
                f"smaller than {output_format}"
            )
        return recommendations

    quality = outcome.quality_achieved
    if quality is not None and quality < LOW_QUALITY_THRESHOLD:
        message = f"quality dropped to {quality}; expect visible compression artifacts"
        alternative = _better_format(output_format)
        if alternative is not None:
            message += f"; {alternative} output would allow higher quality at this size"
        else:
            message += "; a larger target size would allow higher quality"
        recommendations.append(message)

    if probe.scale < 1.0:
        recommendations.append(
            f"image was downscaled to {width}x{height} to fit; "
            f"a larger target keeps the full resolution"
        )

    if output_format == 'PNG' and source_format in PHOTO_SOURCE_FORMATS:
        recommendations.append(
            "PNG is inefficient for photographic content; JPEG or WebP output "
            "would be far smaller at similar visual quality"
        )

    if original_size <= target_bytes:
        recommendations.append("source file already meets the target size")

    return recommendations
