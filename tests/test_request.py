import pytest

from sizefit.errors import ValidationError
from sizefit.request import (
    BYTES_PER_MB,
    CompressionRequest,
    CompressionStrategy,
    OutputFormat,
    ResamplingAlgorithm,
    validate_request,
)
from sizefit.settings import EngineSettings


class TestParsing:
    def test_format_names_are_case_insensitive(self):
        assert OutputFormat.parse("webp") is OutputFormat.WEBP
        assert OutputFormat.parse("Png") is OutputFormat.PNG

    def test_jpg_alias(self):
        assert OutputFormat.parse("jpg") is OutputFormat.JPEG

    def test_unknown_format(self):
        with pytest.raises(ValidationError, match="Unsupported output format: AVIF"):
            OutputFormat.parse("avif")

    def test_strategy_and_resampling(self):
        assert CompressionStrategy.parse("HYBRID") is CompressionStrategy.HYBRID
        assert ResamplingAlgorithm.parse("bicubic") is ResamplingAlgorithm.BICUBIC
        with pytest.raises(ValidationError):
            CompressionStrategy.parse("smart")
        with pytest.raises(ValidationError):
            ResamplingAlgorithm.parse("box")


class TestCompressionRequest:
    def test_defaults(self):
        request = CompressionRequest(target_size_bytes=1000)
        assert request.output_format is OutputFormat.JPEG
        assert request.compression_strategy is CompressionStrategy.AUTO
        assert request.resampling_algorithm is ResamplingAlgorithm.LANCZOS
        assert request.maintain_aspect_ratio
        assert request.progressive_jpeg
        assert request.optimize_png
        assert not request.preserve_metadata
        assert request.quality_override is None

    def test_string_values_normalized(self):
        request = CompressionRequest(
            target_size_bytes=1000,
            output_format="webp",
            compression_strategy="lossless",
            resampling_algorithm="nearest",
        )
        assert request.output_format is OutputFormat.WEBP
        assert request.compression_strategy is CompressionStrategy.LOSSLESS
        assert request.resampling_algorithm is ResamplingAlgorithm.NEAREST

    def test_from_mb(self):
        request = CompressionRequest.from_mb(0.5)
        assert request.target_size_bytes == BYTES_PER_MB // 2
        assert request.target_size_mb == pytest.approx(0.5)

    @pytest.mark.parametrize("target", [0, -5])
    def test_non_positive_target(self, target):
        with pytest.raises(ValidationError):
            CompressionRequest(target_size_bytes=target)


class TestValidateRequest:
    def test_accepts_range_edges(self):
        validate_request(CompressionRequest.from_mb(0.1))
        validate_request(CompressionRequest.from_mb(50))

    @pytest.mark.parametrize("target_mb", [0.05, 50.5])
    def test_target_out_of_range(self, target_mb):
        with pytest.raises(ValidationError, match="Target size"):
            validate_request(CompressionRequest.from_mb(target_mb))

    def test_range_comes_from_settings(self):
        settings = EngineSettings(min_target_mb=0.001, max_target_mb=1.0)
        validate_request(CompressionRequest(target_size_bytes=10 * 1024), settings)
        with pytest.raises(ValidationError):
            validate_request(CompressionRequest.from_mb(2), settings)

    @pytest.mark.parametrize("quality", [9, 96, 0, 100])
    def test_quality_out_of_range(self, quality):
        request = CompressionRequest.from_mb(1, quality_override=quality)
        with pytest.raises(ValidationError, match="Quality"):
            validate_request(request)

    @pytest.mark.parametrize("quality", [10, 50, 95])
    def test_quality_in_range(self, quality):
        validate_request(CompressionRequest.from_mb(1, quality_override=quality))

    @pytest.mark.parametrize("quality", [50.5, True, "80"])
    def test_quality_must_be_integer(self, quality):
        request = CompressionRequest.from_mb(1, quality_override=quality)
        with pytest.raises(ValidationError, match="integer"):
            validate_request(request)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_request(CompressionRequest.from_mb(100))
