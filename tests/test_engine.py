import threading

import pytest
from PIL import Image

from sizefit.compression import (
    CompressionEngine,
    EncoderOptions,
    SearchPath,
    get_encoder,
    suggest_dimensions,
)
from sizefit.errors import CompressionCancelled, TargetTooSmall
from sizefit.settings import SearchLimits

from conftest import SizeTableEncoder, noise_image


# With SizeTableEncoder a 100x100 image costs 100 * quality + 100 bytes lossy
# and 5100 bytes lossless.
@pytest.fixture
def square():
    return Image.new('RGB', (100, 100), (120, 120, 120))


def run(encoder, image, target, limits=None, **kwargs):
    engine = CompressionEngine(encoder, limits=limits)
    return engine.compress_to_target(image, target, **kwargs)


class TestLossyBisection:
    def test_finds_highest_quality_under_target(self, size_encoder, square):
        outcome = run(size_encoder, square, 5100)
        assert outcome.target_reached
        assert outcome.quality_achieved == 50
        assert outcome.probe.size == 5100
        assert outcome.probe.dimensions == (100, 100)
        assert outcome.iterations == 7
        assert outcome.processing_strategy == "lossy"
        assert outcome.algorithm_used == "fake-quality-bisection"

    def test_generous_target_keeps_top_quality(self, size_encoder, square):
        outcome = run(size_encoder, square, 10 ** 9)
        assert outcome.quality_achieved == 95

    def test_deterministic(self, square):
        first = run(SizeTableEncoder(), square, 4321)
        second = run(SizeTableEncoder(), square, 4321)
        assert (first.quality_achieved, first.iterations, first.probe.size) == \
            (second.quality_achieved, second.iterations, second.probe.size)

    def test_size_offset_counts_toward_target(self, size_encoder, square):
        outcome = run(size_encoder, square, 5100, size_offset=1000)
        assert outcome.quality_achieved == 40
        assert outcome.probe.size == 5100
        assert len(outcome.probe.encoded_bytes) == 4100

    def test_source_image_untouched(self, size_encoder, square):
        run(size_encoder, square, 500)
        assert square.size == (100, 100)


class TestQualityOverride:
    def test_single_encode(self, size_encoder, square):
        outcome = run(size_encoder, square, 5100, quality_override=40)
        assert outcome.iterations == 1
        assert outcome.quality_achieved == 40
        assert outcome.target_reached
        assert outcome.algorithm_used == "fake-fixed-quality"

    def test_override_over_target_is_reported(self, size_encoder, square):
        outcome = run(size_encoder, square, 5100, quality_override=80)
        assert outcome.iterations == 1
        assert not outcome.target_reached
        assert outcome.probe.size == 8100
        assert "quality override exceeds the target size" in outcome.notes


class TestScaleFallback:
    def test_iteration_budget_is_a_hard_bound(self, size_encoder, square):
        outcome = run(size_encoder, square, 500)
        assert outcome.iterations == 8
        assert not outcome.target_reached
        # Smallest trial is reported: quality floor at the last scale step
        assert outcome.probe.dimensions == (72, 72)
        assert outcome.quality_achieved == 10
        assert outcome.probe.size == 618
        assert any("budget of 8 exhausted" in note for note in outcome.notes)

    def test_downscale_until_target_fits(self, size_encoder, square):
        outcome = run(size_encoder, square, 500, limits=SearchLimits(max_iterations=20))
        assert outcome.target_reached
        assert outcome.probe.dimensions == (61, 61)
        assert outcome.probe.size == 472
        assert outcome.quality_achieved == 10
        assert outcome.scale_steps == 3
        assert outcome.iterations == 15
        assert outcome.algorithm_used == "fake-quality-bisection+lanczos-downscale"

    def test_stops_at_minimum_dimension(self, size_encoder):
        image = Image.new('RGB', (20, 20))
        limits = SearchLimits(max_iterations=50, min_dimension=16)
        # 16x16 at quality 10 is 125 bytes, so 120 cannot be met
        outcome = run(size_encoder, image, 120, limits=limits)
        assert not outcome.target_reached
        assert outcome.probe.dimensions == (16, 16)
        assert any("minimum dimension" in note for note in outcome.notes)


class TestLosslessAndHybrid:
    def test_lossless_path(self, size_encoder, square):
        outcome = run(size_encoder, square, 6000, path=SearchPath.LOSSLESS)
        assert outcome.iterations == 1
        assert outcome.quality_achieved is None
        assert outcome.processing_strategy == "lossless"
        assert outcome.algorithm_used == "fake-lossless"

    def test_lossless_ignores_override(self, size_encoder, square):
        outcome = run(size_encoder, square, 6000, path=SearchPath.LOSSLESS, quality_override=50)
        assert outcome.quality_achieved is None
        assert any("ignored" in note for note in outcome.notes)

    def test_hybrid_lossless_success(self, size_encoder, square):
        outcome = run(size_encoder, square, 6000, path=SearchPath.HYBRID)
        assert outcome.iterations == 1
        assert outcome.quality_achieved is None
        assert outcome.processing_strategy == "hybrid-lossless"

    def test_hybrid_falls_back_to_lossy(self, size_encoder, square):
        outcome = run(size_encoder, square, 3000, path=SearchPath.HYBRID)
        assert outcome.target_reached
        assert outcome.processing_strategy == "hybrid-lossy-fallback"
        assert outcome.quality_achieved == 29
        assert outcome.iterations == 8

    def test_hybrid_override_skips_lossless_pass(self, size_encoder, square):
        # Lossless (5100 bytes) would fit; the override still wins
        outcome = run(size_encoder, square, 6000, path=SearchPath.HYBRID, quality_override=30)
        assert outcome.iterations == 1
        assert outcome.quality_achieved == 30
        assert outcome.processing_strategy == "lossy"
        assert outcome.algorithm_used == "fake-fixed-quality"
        trials = [c for c in size_encoder.calls if c[0] == (100, 100)]
        assert trials == [((100, 100), 30, False)]

    def test_hybrid_override_over_target_is_single_encode(self, size_encoder, square):
        outcome = run(size_encoder, square, 3000, path=SearchPath.HYBRID, quality_override=30)
        assert outcome.iterations == 1
        assert outcome.quality_achieved == 30
        assert not outcome.target_reached
        assert "quality override exceeds the target size" in outcome.notes

    def test_hybrid_override_noted_without_quality_axis(self, square):
        encoder = SizeTableEncoder(supports_quality=False)
        outcome = run(encoder, square, 6000, path=SearchPath.HYBRID, quality_override=30)
        assert outcome.processing_strategy == "hybrid-lossless"
        assert outcome.quality_achieved is None
        assert sum("quality override 30 ignored" in note for note in outcome.notes) == 1

    def test_hybrid_without_quality_axis_downscales(self, square):
        encoder = SizeTableEncoder(supports_quality=False)
        outcome = run(encoder, square, 4000, path=SearchPath.HYBRID)
        assert outcome.target_reached
        assert outcome.processing_strategy == "hybrid-lossy-fallback"
        assert outcome.probe.dimensions == (85, 85)
        assert outcome.quality_achieved is None
        # The lossless trial at full size is reused, not encoded twice
        assert outcome.iterations == 2


class TestFailures:
    def test_target_below_one_pixel_floor(self, size_encoder, square):
        with pytest.raises(TargetTooSmall) as excinfo:
            run(size_encoder, square, 50)
        assert excinfo.value.floor_bytes == 100

    def test_metadata_offset_raises_the_floor(self, size_encoder, square):
        with pytest.raises(TargetTooSmall):
            run(size_encoder, square, 150, size_offset=100)

    def test_cancelled_before_first_trial(self, size_encoder, square):
        event = threading.Event()
        event.set()
        engine = CompressionEngine(size_encoder, cancel_event=event)
        with pytest.raises(CompressionCancelled):
            engine.compress_to_target(square, 5100)


class TestRealJpeg:
    def test_bisection_result_is_maximal(self):
        encoder = get_encoder("JPEG")
        image = noise_image(256, 256, seed=7)
        options = EncoderOptions(quality=95, progressive=True)
        target = encoder.probe_size(image, EncoderOptions(quality=50, progressive=True))

        outcome = CompressionEngine(encoder).compress_to_target(image, target, options=options)

        quality = outcome.quality_achieved
        assert outcome.target_reached
        assert len(outcome.probe.encoded_bytes) <= target
        assert 10 <= quality <= 95
        assert outcome.iterations <= 8
        if quality < 95:
            above = EncoderOptions(quality=quality + 1, progressive=True)
            assert encoder.probe_size(image, above) > target


def test_suggest_dimensions():
    assert suggest_dimensions(4000, 3000, 10240, 40960) == (1800, 1344)
    assert suggest_dimensions(100, 100, 500, 0) == (100, 100)
