"""Compression engine: quality bisection with scale fallback."""

import logging
import math
import threading
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from PIL import Image

from ..errors import CompressionCancelled, TargetTooSmall
from ..request import ResamplingAlgorithm
from ..resample import resize, scaled_dimensions
from ..settings import SearchLimits
from .encoders import BaseEncoder
from .result import EncoderOptions
from .strategy import SearchPath


logger = logging.getLogger(__name__)

# Conservative margin for dimension suggestions
DIMENSION_SAFETY_MARGIN = 0.9


@dataclass(frozen=True)
class Probe:
    """One trial encode.

    Attributes:
        encoded_bytes: Trial output without metadata
        size: Encoded size plus the metadata offset
        quality: Encoder quality, None for lossless trials
        options: Options the trial was encoded with
        image: Image the trial was encoded from (resized when scale < 1)
        scale: Scale factor relative to the source
    """
    encoded_bytes: bytes
    size: int
    quality: Optional[int]
    options: EncoderOptions
    image: Image.Image = field(repr=False, compare=False)
    scale: float = 1.0

    @property
    def dimensions(self) -> Tuple[int, int]:
        return self.image.size

    @property
    def lossless(self) -> bool:
        return self.options.lossless


class SearchState:
    """Mutable state of one search, owned by a single engine call.

    Keeps the best trial under the target (largest dimensions, then
    highest quality) and the smallest trial seen, which is reported when
    the target cannot be met.
    """

    def __init__(self, target_bytes: int, max_iterations: int, size_offset: int = 0):
        self.target_bytes = target_bytes
        self.size_offset = size_offset
        self.max_iterations = max_iterations
        self.iterations = 0
        self.scale = 1.0
        self.scale_steps = 0
        self.best: Optional[Probe] = None
        self.closest: Optional[Probe] = None
        self.notes: List[str] = []
        self._cache: Dict[Tuple, Probe] = {}

    def has_budget(self) -> bool:
        return self.iterations < self.max_iterations

    def cached(self, key: Tuple) -> Optional[Probe]:
        return self._cache.get(key)

    def record(self, key: Tuple, probe: Probe) -> None:
        self.iterations += 1
        self._cache[key] = probe

        if probe.size <= self.target_bytes:
            if self.best is None or _rank(probe) > _rank(self.best):
                self.best = probe
        if self.closest is None or probe.size < self.closest.size:
            self.closest = probe


def _rank(probe: Probe) -> Tuple[int, int]:
    width, height = probe.dimensions
    quality = probe.quality if probe.quality is not None else 101
    return (width * height, quality)


@dataclass(frozen=True)
class SearchOutcome:
    """Chosen trial plus how the search got there."""
    probe: Probe
    iterations: int
    path: SearchPath
    processing_strategy: str
    algorithm_used: str
    target_reached: bool
    scale_steps: int = 0
    notes: Tuple[str, ...] = ()

    @property
    def quality_achieved(self) -> Optional[int]:
        return None if self.probe.lossless else self.probe.quality


class CompressionEngine:
    """Finds encoder parameters that meet a byte budget.

    Features:
    - Integer bisection over quality (highest quality under the target wins)
    - Geometric downscaling when the quality floor still overshoots
    - Lossless and hybrid paths for formats and callers that need them
    - Cached trials and a hard iteration budget
    - Cooperative cancellation between trials
    """

    def __init__(
        self,
        encoder: BaseEncoder,
        limits: Optional[SearchLimits] = None,
        resampling_algorithm: ResamplingAlgorithm = ResamplingAlgorithm.LANCZOS,
        maintain_aspect_ratio: bool = True,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize engine with specific encoder.

        Args:
            encoder: Format-specific encoder to use
            limits: Search bounds (defaults to SearchLimits())
            resampling_algorithm: Filter used for downscaled trials
            maintain_aspect_ratio: Keep the source ratio when downscaling
            cancel_event: Set to stop before the next trial
        """
        self.encoder = encoder
        self.limits = limits or SearchLimits()
        self.resampling_algorithm = ResamplingAlgorithm.parse(resampling_algorithm)
        self.maintain_aspect_ratio = maintain_aspect_ratio
        self.cancel_event = cancel_event

    def compress_to_target(
        self,
        image: Image.Image,
        target_bytes: int,
        path: SearchPath = SearchPath.LOSSY,
        options: Optional[EncoderOptions] = None,
        quality_override: Optional[int] = None,
        size_offset: int = 0,
    ) -> SearchOutcome:
        """Search for the best encoding no larger than target_bytes.

        Args:
            image: PIL Image to compress (never modified)
            target_bytes: Byte budget, metadata included
            path: Search path chosen by the strategy selector
            options: Base encoding options (quality is overridden)
            quality_override: Encode once at this quality instead of searching
            size_offset: Bytes added to every trial (metadata reattached later)

        Returns:
            SearchOutcome; target_reached is False when the budget ran out

        Raises:
            TargetTooSmall: If even a 1x1 encode exceeds the target
            EncodeFailure: On codec errors (not retried)
            CompressionCancelled: If cancel_event was set
        """
        if options is None:
            options = EncoderOptions()

        self._check_floor(image, target_bytes, path, options, size_offset)

        state = SearchState(target_bytes, self.limits.max_iterations, size_offset)

        if path is SearchPath.LOSSY:
            self._run_lossy(state, image, options, quality_override)
            strategy = "lossy"
        elif path is SearchPath.LOSSLESS:
            if quality_override is not None:
                state.notes.append(
                    f"quality override {quality_override} ignored by lossless strategy"
                )
            self._run_lossless(state, image, options)
            strategy = "lossless"
        elif quality_override is not None and self.encoder.supports_quality:
            state.notes.append(
                f"quality override {quality_override} given; lossless pass skipped"
            )
            self._run_lossy(state, image, options, quality_override)
            strategy = "lossy"
        else:
            if quality_override is not None:
                state.notes.append(
                    f"quality override {quality_override} ignored: "
                    f"{self.encoder.format_name} has no quality setting"
                )
            lossless = self.encoder.lossless_options(options)
            self._probe(state, image, lossless)
            if state.best is not None:
                state.notes.append("lossless pass met the target; no quality loss")
                strategy = "hybrid-lossless"
            else:
                state.notes.append("lossless pass exceeded the target; falling back to lossy")
                self._run_lossy(state, image, options, None)
                strategy = "hybrid-lossy-fallback"

        return self._finish(state, path, strategy, quality_override)

    def minimum_viable_size(
        self,
        mode: str,
        path: SearchPath,
        options: EncoderOptions,
    ) -> int:
        """Size of a 1x1 encode at the smallest settings the path may use."""
        pixel = Image.new(mode, (1, 1))
        sizes = []
        if path is not SearchPath.LOSSLESS and self.encoder.supports_quality:
            floor_options = replace(options, quality=self.limits.min_quality, lossless=False)
            sizes.append(self.encoder.probe_size(pixel, floor_options))
        sizes.append(self.encoder.probe_size(pixel, self.encoder.lossless_options(options)))
        return min(sizes)

    def _check_floor(self, image, target_bytes, path, options, size_offset):
        floor = self.minimum_viable_size(image.mode, path, options) + size_offset
        if target_bytes < floor:
            raise TargetTooSmall(target_bytes, floor)

    def _check_cancelled(self, state: SearchState) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CompressionCancelled(
                f"Cancelled after {state.iterations} trial encode(s)"
            )

    def _probe(
        self,
        state: SearchState,
        image: Image.Image,
        options: EncoderOptions,
    ) -> Probe:
        """Encode one trial, using the cache when possible."""
        key = (image.size, options.cache_key())
        cached = state.cached(key)
        if cached is not None:
            return cached

        self._check_cancelled(state)

        encoded = self.encoder.encode(image, options)
        probe = Probe(
            encoded_bytes=encoded,
            size=len(encoded) + state.size_offset,
            quality=options.quality,
            options=options,
            image=image,
            scale=state.scale,
        )
        state.record(key, probe)

        logger.debug(
            f"trial {state.iterations}/{state.max_iterations}: "
            f"{self.encoder.format_name} {image.width}x{image.height} "
            f"q={'lossless' if options.lossless else options.quality} "
            f"-> {probe.size} bytes (target {state.target_bytes})"
        )
        return probe

    def _run_lossy(
        self,
        state: SearchState,
        image: Image.Image,
        options: EncoderOptions,
        quality_override: Optional[int],
    ) -> None:
        if not self.encoder.supports_quality:
            # No quality axis: only dimensions can shrink the output
            if quality_override is not None:
                state.notes.append(
                    f"quality override {quality_override} ignored: "
                    f"{self.encoder.format_name} has no quality setting"
                )
            lossless = self.encoder.lossless_options(options)
            # Cached when the hybrid path already tried it
            self._probe(state, image, lossless)
            if state.best is None:
                self._scale_fallback(state, image, lossless, lossy=False)
            return

        options = replace(options, lossless=False)

        if quality_override is not None:
            probe = self._probe(state, image, replace(options, quality=quality_override))
            state.notes.append(f"quality override {quality_override} applied; search skipped")
            if probe.size > state.target_bytes:
                state.notes.append("quality override exceeds the target size")
            return

        self._bisect(state, image, options, self.limits.min_quality, self.limits.max_quality)

        if state.best is None:
            self._scale_fallback(state, image, options, lossy=True)

    def _run_lossless(
        self,
        state: SearchState,
        image: Image.Image,
        options: EncoderOptions,
    ) -> None:
        lossless = self.encoder.lossless_options(options)
        self._probe(state, image, lossless)
        if state.best is None:
            self._scale_fallback(state, image, lossless, lossy=False)

    def _bisect(
        self,
        state: SearchState,
        image: Image.Image,
        options: EncoderOptions,
        low: int,
        high: int,
    ) -> None:
        """Binary search for the highest quality under the target."""
        low = max(low, self.limits.min_quality)
        high = min(high, self.limits.max_quality)

        while low <= high and state.has_budget():
            mid = (low + high) // 2
            probe = self._probe(state, image, replace(options, quality=mid))

            if probe.size <= state.target_bytes:
                # Under target - this is valid, try higher quality
                low = mid + 1
            else:
                # Over target - try lower quality
                high = mid - 1

    def _scale_fallback(
        self,
        state: SearchState,
        image: Image.Image,
        options: EncoderOptions,
        lossy: bool,
    ) -> None:
        """Shrink dimensions geometrically until a trial fits.

        Each step resizes from the source image. Lossy steps probe the
        quality floor first and only bisect upwards when the floor fits.
        """
        width, height = image.size
        previous = image.size
        scale = 1.0

        for _ in range(self.limits.max_scale_steps):
            if not state.has_budget():
                break

            scale *= self.limits.scale_decay
            dimensions = scaled_dimensions(
                width,
                height,
                scale,
                maintain_aspect_ratio=self.maintain_aspect_ratio,
                min_dimension=self.limits.min_dimension,
            )
            if dimensions == previous:
                state.notes.append(
                    f"minimum dimension of {self.limits.min_dimension}px reached"
                )
                break
            previous = dimensions

            self._check_cancelled(state)
            trial = resize(image, dimensions[0], dimensions[1], self.resampling_algorithm)
            state.scale = scale
            state.scale_steps += 1

            if lossy:
                floor = self._probe(state, trial, replace(options, quality=self.limits.min_quality))
                if floor.size <= state.target_bytes:
                    self._bisect(
                        state, trial, options,
                        self.limits.min_quality + 1, self.limits.max_quality,
                    )
                    return
            else:
                probe = self._probe(state, trial, options)
                if probe.size <= state.target_bytes:
                    return

    def _finish(
        self,
        state: SearchState,
        path: SearchPath,
        strategy: str,
        quality_override: Optional[int],
    ) -> SearchOutcome:
        reached = state.best is not None
        chosen = state.best if reached else state.closest

        width, height = chosen.dimensions
        if chosen.scale < 1.0:
            state.notes.append(
                f"downscaled to {width}x{height} (scale {chosen.scale:.2f}) "
                f"using {self.resampling_algorithm.value} resampling"
            )

        if not reached and not state.has_budget():
            state.notes.append(f"iteration budget of {state.max_iterations} exhausted")

        return SearchOutcome(
            probe=chosen,
            iterations=state.iterations,
            path=path,
            processing_strategy=strategy,
            algorithm_used=self._algorithm_name(chosen, quality_override),
            target_reached=reached,
            scale_steps=state.scale_steps,
            notes=tuple(state.notes),
        )

    def _algorithm_name(self, probe: Probe, quality_override: Optional[int]) -> str:
        name = self.encoder.format_name.lower()
        if probe.lossless:
            name += "-lossless"
        elif quality_override is not None and probe.quality == quality_override:
            name += "-fixed-quality"
        else:
            name += "-quality-bisection"
        if probe.scale < 1.0:
            name += f"+{self.resampling_algorithm.value}-downscale"
        return name


def suggest_dimensions(
    width: int,
    height: int,
    target_bytes: int,
    current_size: int,
    min_dimension: int = 16,
) -> Tuple[int, int]:
    """Calculate dimensions likely to achieve the target size.

    Uses conservative estimate with safety margin.

    Args:
        width: Width of the closest trial
        height: Height of the closest trial
        target_bytes: Target size in bytes
        current_size: Size of the closest trial

    Returns:
        Suggested (width, height) tuple
    """
    if current_size <= 0:
        return (width, height)

    # Size scales approximately with pixel count
    scale = math.sqrt(target_bytes / current_size) * DIMENSION_SAFETY_MARGIN

    new_width = max(min_dimension, int(width * scale))
    new_height = max(min_dimension, int(height * scale))

    # Round to multiples of 8 (JPEG block size)
    new_width = max(min_dimension, (new_width // 8) * 8)
    new_height = max(min_dimension, (new_height // 8) * 8)

    return (min(width, new_width), min(height, new_height))
