"""
PlantScan - Color Heuristic Diagnostics Engine

Turns raw image bytes into a coarse disease classification:
1. Pixel Histogram: every pixel lands in at most one of green / brown / yellow.
2. Ratio Rules: brown and yellow shares of the colored pixels pick the label.
3. Scoring: confidence grows with the ratio, severity tiers at fixed cut-offs.

This is a fixed, explainable heuristic. Nothing here is trained.
"""

import io
import logging
from typing import NamedTuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from errors import ImageDecodeError

logger = logging.getLogger("plantscan-diagnostics")

HEALTHY_LABEL = "Healthy Plant"
BROWN_SPOT_LABEL = "Leaf Spot / Brown Spot Disease"
YELLOW_RUST_LABEL = "Rust or Yellow Leaf Disease"

MAX_CONFIDENCE = 0.99


class ColorCounts(NamedTuple):
    green: int
    brown: int
    yellow: int

    @property
    def colored(self) -> int:
        return self.green + self.brown + self.yellow


class ClassificationResult(NamedTuple):
    disease_name: str
    confidence: float
    severity: str  # "low" | "medium" | "high"


# ----------------- Decoding -----------------
def decode_pixels(image_bytes):
    """Decode an image payload into an (H, W, 4) uint8 RGBA array."""
    if not image_bytes:
        raise ImageDecodeError("Image payload is empty.")
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e
    return np.asarray(rgba, dtype=np.uint8)


# ----------------- Feature Extraction -----------------
def count_color_pixels(pixels):
    """
    Histogram an RGBA (or RGB) buffer into green / brown / yellow counts.

    Checks run in a fixed order (green, then brown, then yellow) so each
    pixel contributes to at most one bucket. Returns (ColorCounts, total_sampled).
    """
    rgb = pixels[..., :3].astype(np.int16)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]

    green = (g > r + 20) & (g > b + 20)
    brown = ~green & (r > 100) & (g < 100) & (b < 100)
    yellow = ~green & ~brown & (r > 150) & (g > 120) & (b < 100)

    counts = ColorCounts(
        green=int(np.count_nonzero(green)),
        brown=int(np.count_nonzero(brown)),
        yellow=int(np.count_nonzero(yellow)),
    )
    total_sampled = int(r.size)
    return counts, total_sampled


def extract_color_counts(image_bytes):
    """Decode `image_bytes` and return (ColorCounts, total_sampled)."""
    pixels = decode_pixels(image_bytes)
    counts, total = count_color_pixels(pixels)
    logger.info(f"Sampled {total} pixels: green={counts.green} brown={counts.brown} yellow={counts.yellow}")
    return counts, total


# ----------------- Classification -----------------
def classify_colors(counts: ColorCounts) -> ClassificationResult:
    """Map color counts to a label, confidence and severity. Total function."""
    total = counts.colored
    if total == 0:
        brown_ratio = yellow_ratio = 0.0
    else:
        brown_ratio = counts.brown / total
        yellow_ratio = counts.yellow / total

    if brown_ratio > 0.30:
        return ClassificationResult(
            disease_name=BROWN_SPOT_LABEL,
            confidence=min(MAX_CONFIDENCE, 0.70 + brown_ratio * 0.30),
            severity="high" if brown_ratio > 0.50 else "medium",
        )

    if yellow_ratio > 0.20:
        return ClassificationResult(
            disease_name=YELLOW_RUST_LABEL,
            confidence=min(MAX_CONFIDENCE, 0.65 + yellow_ratio * 0.30),
            severity="high" if yellow_ratio > 0.40 else "medium",
        )

    return ClassificationResult(disease_name=HEALTHY_LABEL, confidence=0.60, severity="low")
