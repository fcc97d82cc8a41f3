"""
models.py - Request, option and progress types.

The host boundary is a plain-dict message contract:

    request:  {"documentBytes": bytes,
               "options": {"quality": int, "compressionLevel": str,
                           "preserveQuality": bool}}
    progress: {"progress": int, "message": str}

The dataclasses here validate those messages once, at the edge, so the
rest of the package can trust its inputs.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .exceptions import InvalidOptionsError

DEFAULT_QUALITY = 75
MIN_QUALITY = 0
MAX_QUALITY = 100


class CompressionLevel(str, Enum):
    """Coarse policy knob. Ordered low < medium < high."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    def at_least(self, other: "CompressionLevel") -> bool:
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value) -> "CompressionLevel":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(level.value for level in cls)
            raise InvalidOptionsError(
                f"Unknown compression level {value!r} (expected one of: {choices})"
            ) from None


_LEVEL_RANK = {
    CompressionLevel.LOW: 0,
    CompressionLevel.MEDIUM: 1,
    CompressionLevel.HIGH: 2,
}

DEFAULT_LEVEL = CompressionLevel.MEDIUM


@dataclass(frozen=True)
class CompressionOptions:
    """User-chosen settings for one compression request."""
    quality: int = DEFAULT_QUALITY
    compression_level: CompressionLevel = DEFAULT_LEVEL
    preserve_quality: bool = False
    ignore_encryption: bool = True

    def __post_init__(self):
        # bool is an int subclass; reject it explicitly
        if isinstance(self.quality, bool) or not isinstance(self.quality, int):
            raise InvalidOptionsError(f"Quality must be an integer, got {self.quality!r}")
        if not MIN_QUALITY <= self.quality <= MAX_QUALITY:
            raise InvalidOptionsError(
                f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {self.quality}"
            )
        object.__setattr__(
            self, "compression_level", CompressionLevel.parse(self.compression_level)
        )
        object.__setattr__(self, "preserve_quality", bool(self.preserve_quality))
        object.__setattr__(self, "ignore_encryption", bool(self.ignore_encryption))

    @property
    def level(self) -> CompressionLevel:
        return self.compression_level

    @property
    def is_high(self) -> bool:
        return self.compression_level is CompressionLevel.HIGH

    @classmethod
    def from_message(cls, message: Optional[Dict[str, Any]]) -> "CompressionOptions":
        """Build options from the host's ``options`` message object."""
        message = message or {}
        if not isinstance(message, dict):
            raise InvalidOptionsError("Options must be a mapping")
        return cls(
            quality=message.get("quality", DEFAULT_QUALITY),
            compression_level=message.get("compressionLevel", DEFAULT_LEVEL),
            preserve_quality=message.get("preserveQuality", False),
        )

    def to_message(self) -> Dict[str, Any]:
        return {
            "quality": self.quality,
            "compressionLevel": self.compression_level.value,
            "preserveQuality": self.preserve_quality,
        }


@dataclass(frozen=True)
class CompressionRequest:
    """Immutable input: raw document bytes plus options."""
    document_bytes: bytes
    options: CompressionOptions

    def __post_init__(self):
        if not isinstance(self.document_bytes, (bytes, bytearray, memoryview)):
            raise InvalidOptionsError("Document must be provided as bytes")
        object.__setattr__(self, "document_bytes", bytes(self.document_bytes))

    @property
    def original_size(self) -> int:
        return len(self.document_bytes)

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "CompressionRequest":
        """Parse ``{documentBytes, options}`` as sent by a host."""
        if not isinstance(message, dict) or "documentBytes" not in message:
            raise InvalidOptionsError("Request message must contain 'documentBytes'")
        return cls(
            document_bytes=message["documentBytes"],
            options=CompressionOptions.from_message(message.get("options")),
        )


@dataclass(frozen=True)
class ProgressEvent:
    """One progress update. ``progress`` is 0-100 and never decreases within a request."""
    progress: int
    message: Optional[str] = None

    def to_message(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"progress": self.progress}
        if self.message:
            payload["message"] = self.message
        return payload
