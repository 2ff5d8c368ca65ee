import numpy as np
import pytest

from conftest import BROWN, GREEN, GREY, YELLOW, make_png
from diagnostics_engine import (
    BROWN_SPOT_LABEL,
    HEALTHY_LABEL,
    YELLOW_RUST_LABEL,
    ColorCounts,
    classify_colors,
    count_color_pixels,
    decode_pixels,
    extract_color_counts,
)
from errors import ImageDecodeError


def test_extract_counts_each_bucket():
    png = make_png((GREEN, 5), (BROWN, 3), (YELLOW, 2), (GREY, 4))
    counts, total = extract_color_counts(png)
    assert counts == ColorCounts(green=5, brown=3, yellow=2)
    assert total == 14


def test_green_wins_over_yellow():
    # Satisfies both the green and the yellow rule; green is checked first.
    pixels = np.array([[[160, 200, 50, 255]]], dtype=np.uint8)
    counts, total = count_color_pixels(pixels)
    assert counts == ColorCounts(green=1, brown=0, yellow=0)
    assert total == 1


def test_counts_never_exceed_total_pixels():
    rng = np.random.default_rng(7)
    pixels = rng.integers(0, 256, size=(64, 48, 4), dtype=np.uint8)
    counts, total = count_color_pixels(pixels)
    assert total == 64 * 48
    assert counts.green + counts.brown + counts.yellow <= total
    assert min(counts) >= 0


def test_threshold_edges_are_strict():
    pixels = np.array([[
        [100, 120, 100],  # G == R+20: not green
        [100, 50, 50],    # R == 100: not brown
        [150, 130, 50],   # R == 150: not yellow
    ]], dtype=np.uint8)
    counts, _ = count_color_pixels(pixels)
    assert counts == ColorCounts(0, 0, 0)


def test_decode_keeps_alpha_channel():
    pixels = decode_pixels(make_png((GREEN, 3)))
    assert pixels.shape == (1, 3, 4)


@pytest.mark.parametrize("payload", [b"", b"definitely not an image", make_png((GREEN, 50))[:40]])
def test_undecodable_payload_raises(payload):
    with pytest.raises(ImageDecodeError):
        extract_color_counts(payload)


def test_brown_ratio_at_threshold_is_healthy():
    result = classify_colors(ColorCounts(green=70, brown=30, yellow=0))
    assert result.disease_name == HEALTHY_LABEL


def test_brown_ratio_just_over_threshold():
    result = classify_colors(ColorCounts(green=699, brown=301, yellow=0))
    assert result.disease_name == BROWN_SPOT_LABEL
    assert result.confidence == pytest.approx(0.70 + 0.301 * 0.30)
    assert result.severity == "medium"


def test_brown_spot_scenario():
    result = classify_colors(ColorCounts(green=200, brown=100, yellow=0))
    assert result.disease_name == BROWN_SPOT_LABEL
    assert result.confidence == pytest.approx(0.80)
    assert result.severity == "medium"


def test_brown_spot_high_severity_and_clamp():
    result = classify_colors(ColorCounts(green=0, brown=10, yellow=0))
    assert result.severity == "high"
    assert result.confidence == 0.99


def test_yellow_branch():
    medium = classify_colors(ColorCounts(green=70, brown=0, yellow=30))
    assert medium.disease_name == YELLOW_RUST_LABEL
    assert medium.confidence == pytest.approx(0.74)
    assert medium.severity == "medium"

    high = classify_colors(ColorCounts(green=50, brown=0, yellow=50))
    assert high.severity == "high"
    assert high.confidence == pytest.approx(0.80)


def test_brown_checked_before_yellow():
    result = classify_colors(ColorCounts(green=0, brown=40, yellow=60))
    assert result.disease_name == BROWN_SPOT_LABEL


def test_all_zero_counts_are_healthy():
    result = classify_colors(ColorCounts(0, 0, 0))
    assert result == (HEALTHY_LABEL, 0.60, "low")


def test_classification_is_deterministic_and_bounded():
    rng = np.random.default_rng(3)
    for _ in range(200):
        counts = ColorCounts(*(int(x) for x in rng.integers(0, 1000, size=3)))
        first = classify_colors(counts)
        assert first == classify_colors(counts)
        assert 0.0 <= first.confidence <= 0.99
        assert first.severity in ("low", "medium", "high")
