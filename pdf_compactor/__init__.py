"""
PDF Compactor - structural and image compression for PDF documents.

This package shrinks a PDF in place: it prunes metadata and other
non-essential entries from the object graph, downsamples embedded images
according to the chosen quality settings and rewrites the result with
object streams.
"""

from .estimate import estimate_compressed_size
from .exceptions import (
    CompactorError,
    CompressionCancelled,
    InvalidOptionsError,
    LoadError,
    SaveError,
    StageError,
)
from .models import CompressionLevel, CompressionOptions, CompressionRequest, ProgressEvent
from .pipeline import CompressionPipeline, Stage, compress_document
from .results import CompressionFailure, CompressionResult, compression_ratio
from .worker import CompressionHandle, submit

__version__ = "1.0.0"

__all__ = [
    "CompactorError",
    "CompressionCancelled",
    "CompressionFailure",
    "CompressionHandle",
    "CompressionLevel",
    "CompressionOptions",
    "CompressionPipeline",
    "CompressionRequest",
    "CompressionResult",
    "InvalidOptionsError",
    "LoadError",
    "ProgressEvent",
    "SaveError",
    "Stage",
    "StageError",
    "compress_document",
    "compression_ratio",
    "estimate_compressed_size",
    "submit",
]
