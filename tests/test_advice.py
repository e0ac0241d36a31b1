from PIL import Image

from sizefit.compression import EncoderOptions, SearchPath, build_recommendations
from sizefit.compression.engine import Probe, SearchOutcome
from sizefit.compression.result import UNREACHABLE_MARKER


def outcome(size, quality=60, reached=True, scale=1.0, dims=(400, 300), lossless=False):
    options = EncoderOptions(quality=quality, lossless=lossless)
    probe = Probe(
        encoded_bytes=b'\0' * size,
        size=size,
        quality=quality,
        options=options,
        image=Image.new('RGB', dims),
        scale=scale,
    )
    return SearchOutcome(
        probe=probe,
        iterations=5,
        path=SearchPath.LOSSY,
        processing_strategy="lossy",
        algorithm_used="jpeg-quality-bisection",
        target_reached=reached,
    )


def test_unreachable_marker_comes_first():
    recs = build_recommendations(outcome(40960, quality=10, reached=False, dims=(4000, 3000)),
                                 'JPEG', 10240, 2_000_000)
    assert recs[0].startswith(UNREACHABLE_MARKER)
    assert any("resize to about 1800x1344" in r for r in recs)
    assert any(r.startswith("try WEBP output") for r in recs)


def test_unreachable_override_suggests_removing_it():
    recs = build_recommendations(outcome(9000, quality=90, reached=False), 'JPEG', 5000,
                                 20000, quality_override=90)
    assert any("remove the quality override (90)" in r for r in recs)


def test_webp_has_no_better_format():
    recs = build_recommendations(outcome(9000, quality=10, reached=False), 'WEBP', 5000, 20000)
    assert not any(r.startswith("try ") for r in recs)


def test_low_quality_warning():
    recs = build_recommendations(outcome(4000, quality=25), 'JPEG', 5000, 20000)
    assert any("quality dropped to 25" in r for r in recs)
    assert not any(r.startswith(UNREACHABLE_MARKER) for r in recs)


def test_clean_result_has_no_advice():
    assert build_recommendations(outcome(4000, quality=80), 'JPEG', 5000, 20000) == []


def test_downscale_notice():
    recs = build_recommendations(outcome(4000, quality=80, scale=0.85, dims=(340, 255)),
                                 'JPEG', 5000, 20000)
    assert any("downscaled to 340x255" in r for r in recs)


def test_png_for_photo_and_small_source():
    recs = build_recommendations(outcome(4000, quality=None, lossless=True), 'PNG', 5000, 3000,
                                 source_format='JPEG')
    assert any("PNG is inefficient" in r for r in recs)
    assert "source file already meets the target size" in recs


def test_unreachable_reports_final_output_size():
    # Trial was 9000 bytes; metadata reattachment made the file 12288
    recs = build_recommendations(outcome(9000, quality=10, reached=False), 'JPEG', 5000, 20000,
                                 achieved_size=12288)
    assert "closest result is 0.012 MB" in recs[0]
