"""Per-image compression driver.

Each image walks a fixed sequence of states:

    DECODING -> METADATA_EXTRACTION -> SEARCHING -> ENCODING
             -> METADATA_REATTACH -> DONE

Any failing step moves the job to FAILED with a typed error. Nothing is
retried here.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional

from PIL import Image

from .compression import (
    CompressionAnalytics,
    CompressionEngine,
    CompressionResult,
    EncoderOptions,
    build_recommendations,
    decode_image,
    describe_plan,
    get_encoder,
    select_search_path,
)
from .compression.encoders import BaseEncoder
from .errors import CompressionError
from .metadata import Metadata, extract, overhead, reattach, reattach_params, strip, with_metadata
from .request import BYTES_PER_MB, CompressionRequest
from .settings import EngineSettings


logger = logging.getLogger(__name__)


class JobState(str, Enum):
    PENDING = "pending"
    DECODING = "decoding"
    METADATA_EXTRACTION = "metadata_extraction"
    SEARCHING = "searching"
    ENCODING = "encoding"
    METADATA_REATTACH = "metadata_reattach"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ImageAsset:
    """Decoded input image. Read-only for the whole job.

    Attributes:
        filename: Name reported back to the caller
        data: Raw input bytes
        image: Decoded pixels
        width: Source width
        height: Source height
        source_format: Detected format (JPEG, PNG, ...)
        size_bytes: Size of the raw input
    """
    filename: str
    data: bytes
    image: Image.Image
    width: int
    height: int
    source_format: str
    size_bytes: int


def load_asset(data: bytes, filename: str = "image") -> ImageAsset:
    """Decode raw bytes into an ImageAsset.

    Raises:
        DecodeError: If the bytes cannot be decoded
    """
    image = decode_image(data)
    return ImageAsset(
        filename=filename,
        data=data,
        image=image,
        width=image.width,
        height=image.height,
        source_format=image.format or "UNKNOWN",
        size_bytes=len(data),
    )


@dataclass(frozen=True)
class JobOutcome:
    """Result slot for one image: either a result or an error.

    Attributes:
        index: Position in the batch input
        filename: Input filename
        original_size_bytes: Size of the raw input
        state: Final job state (DONE or FAILED)
        result: CompressionResult when DONE
        error: Typed error when FAILED
    """
    index: int
    filename: str
    original_size_bytes: int
    state: JobState
    result: Optional[CompressionResult] = None
    error: Optional[CompressionError] = None

    @property
    def ok(self) -> bool:
        return self.state is JobState.DONE and self.result is not None


def _has_alpha(image: Image.Image) -> bool:
    if image.mode in ('RGBA', 'LA', 'PA'):
        return True
    if image.mode == 'P' and 'transparency' in image.info:
        return True
    return False


class CompressionOrchestrator:
    """Drives one image through decode, search, encode and metadata steps.

    An orchestrator instance handles a single image. It owns the decoded
    asset and the search state; nothing is shared with other jobs.
    """

    def __init__(
        self,
        request: CompressionRequest,
        settings: Optional[EngineSettings] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.request = request
        self.settings = settings or EngineSettings()
        self.cancel_event = cancel_event
        self.state = JobState.PENDING
        self.failed_state: Optional[JobState] = None
        self.error: Optional[CompressionError] = None

    def process(self, data: bytes, filename: str = "image", index: int = 0) -> JobOutcome:
        """Run the job and capture typed errors in the outcome.

        Args:
            data: Raw input bytes
            filename: Name reported back to the caller
            index: Position in the batch

        Returns:
            JobOutcome with either a result or an error
        """
        try:
            result = self.run(data, filename)
        except CompressionError as e:
            logger.warning(f"{filename}: failed during {self.failed_state.value}: {e}")
            return JobOutcome(
                index=index,
                filename=filename,
                original_size_bytes=len(data),
                state=JobState.FAILED,
                error=e,
            )
        return JobOutcome(
            index=index,
            filename=filename,
            original_size_bytes=len(data),
            state=JobState.DONE,
            result=result,
        )

    def run(self, data: bytes, filename: str = "image") -> CompressionResult:
        """Compress one image to the request's target size.

        Raises:
            DecodeError: Input could not be decoded
            EncodeFailure: Codec error during a trial or the final encode
            TargetTooSmall: Target below the 1x1 encode floor
            CompressionCancelled: Batch was aborted
        """
        try:
            return self._run(data, filename)
        except CompressionError as e:
            self.failed_state = self.state
            self.state = JobState.FAILED
            self.error = e
            raise

    def _run(self, data: bytes, filename: str) -> CompressionResult:
        request = self.request
        limits = self.settings.limits
        notes: List[str] = []

        self.state = JobState.DECODING
        asset = load_asset(data, filename)

        self.state = JobState.METADATA_EXTRACTION
        encoder = get_encoder(request.output_format)
        options = self._base_options(encoder, notes)
        if not encoder.supports_transparency and _has_alpha(asset.image):
            notes.append(
                f"transparency flattened onto a white background for {encoder.format_name}"
            )

        metadata: Optional[Metadata] = None
        size_offset = 0
        if request.preserve_metadata:
            metadata = extract(asset.image)
            working = strip(asset.image, auto_orient=False)
            if not reattach_params(metadata, encoder.format_name):
                notes.append(f"no metadata {encoder.format_name} can carry; output has none")
                metadata = None
            elif limits.metadata_in_probes:
                options = with_metadata(options, metadata, encoder.format_name)
                notes.append("metadata embedded in every trial encode")
            else:
                size_offset = overhead(metadata, encoder, options)
                notes.append(f"metadata preserved ({size_offset} bytes counted toward the target)")
        else:
            working = strip(asset.image)
            notes.append("metadata stripped")

        self.state = JobState.SEARCHING
        path = select_search_path(request.compression_strategy, request.output_format)
        notes.append(describe_plan(request.compression_strategy, request.output_format))
        engine = CompressionEngine(
            encoder,
            limits=limits,
            resampling_algorithm=request.resampling_algorithm,
            maintain_aspect_ratio=request.maintain_aspect_ratio,
            cancel_event=self.cancel_event,
        )
        outcome = engine.compress_to_target(
            working,
            request.target_size_bytes,
            path=path,
            options=options,
            quality_override=request.quality_override,
            size_offset=size_offset,
        )
        notes.extend(outcome.notes)

        # The chosen trial is the final encoding
        self.state = JobState.ENCODING
        probe = outcome.probe
        encoded = probe.encoded_bytes

        self.state = JobState.METADATA_REATTACH
        if metadata is not None and not limits.metadata_in_probes:
            encoded = reattach(probe.image, encoder, probe.options, metadata)

        if outcome.target_reached and len(encoded) > request.target_size_bytes:
            notes.append("metadata overhead pushed the output past the target")
            outcome = replace(outcome, target_reached=False)

        recommendations = build_recommendations(
            outcome,
            encoder.format_name,
            request.target_size_bytes,
            asset.size_bytes,
            source_format=asset.source_format,
            quality_override=request.quality_override,
            min_dimension=limits.min_dimension,
            achieved_size=len(encoded),
        )

        achieved = len(encoded)
        reduction = (1 - achieved / asset.size_bytes) * 100 if asset.size_bytes else 0.0
        analytics = CompressionAnalytics(
            algorithm_used=outcome.algorithm_used,
            iterations_required=outcome.iterations,
            quality_achieved=outcome.quality_achieved,
            processing_strategy=outcome.processing_strategy,
            size_reduction_percentage=round(reduction, 2),
            optimization_notes=tuple(notes),
        )

        width, height = probe.dimensions
        result = CompressionResult(
            encoded_bytes=encoded,
            width=width,
            height=height,
            format_used=encoder.format_name,
            original_size_bytes=asset.size_bytes,
            achieved_size_bytes=achieved,
            target_size_bytes=request.target_size_bytes,
            analytics=analytics,
            recommendations=tuple(recommendations),
            metadata=metadata,
        )

        self.state = JobState.DONE
        logger.info(
            f"{filename}: {asset.size_bytes / BYTES_PER_MB:.3f} MB -> "
            f"{achieved / BYTES_PER_MB:.3f} MB ({encoder.format_name} {width}x{height}, "
            f"{analytics.processing_strategy}, {analytics.iterations_required} trials"
            f"{'' if outcome.target_reached else ', target unreachable'})"
        )
        return result

    def _base_options(self, encoder: BaseEncoder, notes: List[str]) -> EncoderOptions:
        """Starting encoder options for the request's output format."""
        request = self.request
        settings = self.settings

        if encoder.format_name == 'JPEG':
            if request.progressive_jpeg:
                notes.append("progressive JPEG encoding")
            return EncoderOptions(
                quality=settings.limits.max_quality,
                progressive=request.progressive_jpeg,
                optimize=True,
                chroma_subsampling=settings.jpeg_subsampling,
            )
        if encoder.format_name == 'PNG':
            if request.optimize_png:
                notes.append("PNG optimizer pass enabled")
            return EncoderOptions(
                quality=None,
                optimize=request.optimize_png,
                compress_level=settings.png_compress_level,
            )
        return EncoderOptions(
            quality=settings.limits.max_quality,
            method=settings.webp_method,
        )


def compress_image(
    data: bytes,
    request: CompressionRequest,
    filename: str = "image",
    settings: Optional[EngineSettings] = None,
) -> CompressionResult:
    """Compress a single image; raises typed errors on failure."""
    return CompressionOrchestrator(request, settings).run(data, filename)
