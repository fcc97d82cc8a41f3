"""
estimate.py - Quick size estimate before running a compression.

Rough by nature: used to show the user an expected size, never to
decide anything.
"""

import math

from .models import CompressionLevel, CompressionOptions

LEVEL_FACTORS = {
    CompressionLevel.LOW: 0.85,
    CompressionLevel.MEDIUM: 0.65,
}

HIGH_FACTOR_PRESERVING = 0.5
HIGH_FACTOR = 0.3


def level_factor(options: CompressionOptions) -> float:
    if options.compression_level is CompressionLevel.HIGH:
        return HIGH_FACTOR_PRESERVING if options.preserve_quality else HIGH_FACTOR
    return LEVEL_FACTORS[options.compression_level]


def quality_factor(quality: int) -> float:
    """0.5 at quality 0 up to 1.0 at quality 100."""
    return 1 - (100 - quality) / 200


def estimate_compressed_size(file_size: int, options: CompressionOptions) -> int:
    """Estimated output size in bytes for a *file_size*-byte input."""
    if file_size <= 0:
        return 0
    return math.floor(file_size * level_factor(options) * quality_factor(options.quality))
