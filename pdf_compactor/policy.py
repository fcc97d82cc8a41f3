"""
policy.py - How aggressively to downsample each embedded image.

Pure functions only. Given an image's pixel size, its current codec and
the request options, decide whether to re-encode it and at what scale.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .models import CompressionLevel, CompressionOptions

# Images smaller than this on either side are never touched
MIN_IMAGE_DIMENSION = 100

# Either side above this gets an extra reduction
LARGE_IMAGE_DIMENSION = 1000
LARGE_IMAGE_MODIFIER = 0.8

# High level with quality below the threshold gets an extra reduction
LOW_QUALITY_THRESHOLD = 30
LOW_QUALITY_MODIFIER = 0.7

# Wavelet codecs are only recompressed at high level
WAVELET_FILTERS = frozenset({"/JPXDecode"})

# Pillow JPEG quality bounds
JPEG_QUALITY_RANGE = (5, 95)

# (quality threshold, factor above threshold, factor at or below it)
_BASE_FACTORS = {
    CompressionLevel.LOW: (80, 1.0, 0.9),
    CompressionLevel.MEDIUM: (60, 0.8, 0.7),
    CompressionLevel.HIGH: (40, 0.6, 0.5),
}


@dataclass(frozen=True)
class ImageTransform:
    """Re-encode decision for one image."""
    scale: float
    target_width: int
    target_height: int
    skip_reason: Optional[str] = None

    @property
    def skip(self) -> bool:
        return self.skip_reason is not None

    @property
    def target_size(self) -> Tuple[int, int]:
        return self.target_width, self.target_height


def base_factor(level: CompressionLevel, quality: int) -> float:
    threshold, above, at_or_below = _BASE_FACTORS[CompressionLevel.parse(level)]
    return above if quality > threshold else at_or_below


def scale_factor(width: int, height: int, level: CompressionLevel, quality: int) -> float:
    """
    Target scale factor in (0, 1].

    Base factor by (level, quality), then multiplied in order by the
    large-image and high-level/low-quality modifiers.
    """
    level = CompressionLevel.parse(level)
    factor = base_factor(level, quality)

    if width > LARGE_IMAGE_DIMENSION or height > LARGE_IMAGE_DIMENSION:
        factor *= LARGE_IMAGE_MODIFIER

    if level is CompressionLevel.HIGH and quality < LOW_QUALITY_THRESHOLD:
        factor *= LOW_QUALITY_MODIFIER

    return factor


def target_dimensions(width: int, height: int, scale: float) -> Tuple[int, int]:
    return max(1, round(width * scale)), max(1, round(height * scale))


def decide_transform(
    width: int,
    height: int,
    filter_name: Optional[str],
    options: CompressionOptions
) -> ImageTransform:
    """
    Decide what to do with one image XObject.

    Args:
        width: Pixel width from the image dictionary
        height: Pixel height from the image dictionary
        filter_name: Current codec, e.g. "/DCTDecode" (None if unfiltered)
        options: Request options

    Returns:
        ImageTransform; ``skip`` is True when the image must stay as is
    """
    if width < MIN_IMAGE_DIMENSION or height < MIN_IMAGE_DIMENSION:
        return ImageTransform(1.0, width, height, "below minimum size")

    scale = scale_factor(width, height, options.compression_level, options.quality)
    target_width, target_height = target_dimensions(width, height, scale)

    if filter_name in WAVELET_FILTERS and not options.is_high:
        return ImageTransform(scale, width, height, "wavelet codec below high level")

    if scale >= 1.0:
        return ImageTransform(1.0, width, height, "full scale")

    return ImageTransform(scale, target_width, target_height)


def jpeg_quality(options: CompressionOptions) -> int:
    low, high = JPEG_QUALITY_RANGE
    return max(low, min(high, options.quality))
