"""
results.py - Terminal outcomes of a compression request.

Exactly one of CompressionResult (success) or CompressionFailure is
produced per request.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompressionResult:
    """Successful compression."""
    output_bytes: bytes
    original_size: int
    output_size: int
    ratio: float
    stage_reports: tuple = ()
    total_time: float = 0.0

    succeeded = True

    @property
    def bytes_saved(self) -> int:
        # Negative when the output grew
        return self.original_size - self.output_size

    @property
    def reduction_pct(self) -> float:
        return self.ratio * 100

    def summary(self) -> str:
        failed = [r.stage for r in self.stage_reports if not r.success]
        lines = [
            f"Input:  {self.original_size:,} bytes",
            f"Output: {self.output_size:,} bytes",
            f"Reduction: {self.reduction_pct:.1f}%",
            f"Time: {self.total_time:.1f}s",
        ]
        if failed:
            lines.append(f"Skipped stages: {', '.join(failed)}")
        return "\n".join(lines)

    def to_message(self) -> Dict[str, Any]:
        return {
            "outputBytes": self.output_bytes,
            "originalSize": self.original_size,
            "outputSize": self.output_size,
            "ratio": self.ratio,
        }


@dataclass(frozen=True)
class CompressionFailure:
    """Failed compression. No partial output is ever attached."""
    error_message: str

    succeeded = False

    def summary(self) -> str:
        return f"Error: {self.error_message}"

    def to_message(self) -> Dict[str, Any]:
        return {"errorMessage": self.error_message}


CompressionOutcome = Union[CompressionResult, CompressionFailure]


def compression_ratio(original_size: int, output_size: int) -> float:
    """
    (original - output) / original.

    Negative when the output is larger than the input; reported as is.
    """
    if original_size <= 0:
        return 0.0
    return (original_size - output_size) / original_size


def package_result(
    original_size: int,
    output_bytes: bytes,
    stage_reports: Optional[List] = None,
    total_time: float = 0.0
) -> CompressionResult:
    output_size = len(output_bytes)
    ratio = compression_ratio(original_size, output_size)
    if ratio < 0:
        logger.warning(
            f"Output is larger than input ({original_size:,} -> {output_size:,} bytes)"
        )
    return CompressionResult(
        output_bytes=output_bytes,
        original_size=original_size,
        output_size=output_size,
        ratio=ratio,
        stage_reports=tuple(stage_reports or ()),
        total_time=total_time,
    )


def package_error(error: Union[BaseException, str]) -> CompressionFailure:
    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
    else:
        message = str(error) or "Compression failed"
    return CompressionFailure(error_message=message)
