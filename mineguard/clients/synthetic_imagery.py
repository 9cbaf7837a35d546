"""
Synthetic satellite imagery.

Used whenever the imagery provider is unavailable. Produces a textured
placeholder whose palette depends on the analysis type and the acquisition
(before/after/diff), plus a real pixel difference of two images.
"""

import zlib
from io import BytesIO
from typing import Optional

import numpy as np
from PIL import Image, ImageChops

# (analysis type, time type) -> (base RGB, noise amplitude RGB)
PALETTES = {
    ("NDVI", "before"): ((60, 120, 40), (40, 60, 30)),
    ("NDVI", "after"): ((140, 100, 60), (50, 40, 30)),
    ("NDVI", "diff"): ((200, 50, 50), (55, 30, 30)),
    ("BSI", "before"): ((80, 100, 60), (40, 50, 30)),
    ("BSI", "after"): ((160, 120, 70), (50, 40, 30)),
    ("WATER", "before"): ((40, 80, 150), (30, 40, 60)),
    ("WATER", "after"): ((120, 100, 70), (40, 30, 25)),
    ("CHANGE", "before"): ((70, 110, 50), (40, 50, 30)),
    ("CHANGE", "after"): ((130, 90, 60), (50, 40, 30)),
}
DEFAULT_PALETTE = ((130, 90, 60), (50, 40, 30))

# Difference images are stretched so small changes stay visible
DIFF_GAIN = 3


def _palette(analysis_type: str, time_type: str):
    key = (analysis_type, time_type)
    if key in PALETTES:
        return PALETTES[key]
    # Types without a dedicated diff palette reuse their "after" colors
    return PALETTES.get((analysis_type, "after"), DEFAULT_PALETTE)


def _encode_png(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class SyntheticImageryGenerator:
    """Deterministic placeholder imagery keyed by analysis type and time type."""

    def __init__(self, size: int = 512):
        self.size = size

    def render(self, analysis_type: str, time_type: str, size: Optional[int] = None) -> bytes:
        """
        Render a PNG placeholder.

        Args:
            analysis_type: NDVI, BSI, WATER or CHANGE
            time_type: before, after or diff
            size: Square edge in pixels (defaults to the generator size)

        Returns:
            PNG bytes
        """
        size = size or self.size
        analysis_type = getattr(analysis_type, "value", analysis_type)
        (base, amplitude) = _palette(analysis_type, time_type)

        seed = zlib.crc32(f"{analysis_type}:{time_type}".encode("utf-8"))
        rng = np.random.default_rng(seed)

        y, x = np.mgrid[0:size, 0:size].astype(np.float32)
        noise = (np.sin(x * 0.1) * np.cos(y * 0.1) * 0.3 + np.sin(x * 0.05 + y * 0.05) * 0.2) * 0.5

        channels = [
            base[c] + noise * amplitude[c] + rng.normal(0, 4, size=(size, size))
            for c in range(3)
        ]
        rgb = np.stack(channels, axis=-1)

        # Water bodies: darker, bluer patches away from the edges
        center = size / 2
        distance = np.sqrt((x - center) ** 2 + (y - center) ** 2) / np.sqrt(2 * center ** 2)
        water = (np.sin(x * 0.03) * np.cos(y * 0.04) > 0.6) & (distance < 0.7)
        rgb[water] *= np.array([0.3, 0.5, 1.5], dtype=np.float32)

        # Sparse cloud speckle
        clouds = (np.sin(x * 0.02) * np.cos(y * 0.02) > 0.7) & (rng.random((size, size)) > 0.8)
        rgb[clouds] += 100

        pixels = np.clip(rgb, 0, 255).astype(np.uint8)
        return _encode_png(Image.fromarray(pixels))

    def difference(self, before_png: bytes, after_png: bytes) -> bytes:
        """
        Absolute per-pixel difference of two PNGs, contrast-stretched.

        The after image is resized to the before image when they differ.
        """
        before = Image.open(BytesIO(before_png)).convert("RGB")
        after = Image.open(BytesIO(after_png)).convert("RGB")
        if after.size != before.size:
            after = after.resize(before.size)

        diff = ImageChops.difference(before, after)
        stretched = diff.point(lambda value: min(255, value * DIFF_GAIN))
        return _encode_png(stretched)
