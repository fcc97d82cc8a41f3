"""Custom exception types for :mod:`pdf_compactor`."""


class CompactorError(Exception):
    """Base exception for all pdf_compactor related errors."""


class InvalidOptionsError(CompactorError, ValueError):
    """Raised when a compression request carries out-of-range options."""


class LoadError(CompactorError):
    """Raised when the input bytes cannot be opened as a usable document."""


class SaveError(CompactorError):
    """Raised when the mutated document cannot be written back to bytes."""


class StageError(CompactorError):
    """Raised inside an interior pipeline stage. Always recovered."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class CompressionCancelled(CompactorError):
    """Raised when the outcome of a cancelled request is requested."""
