from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class FileFusionError(Exception):
    """Base exception for errors in the filefusion package."""


@dataclass(frozen=True)
class ConfigurationError(FileFusionError):
    """Raised when options are invalid, before any filesystem access."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class PatternError(FileFusionError):
    """Raised when a glob pattern fails validation."""

    pattern: str
    reason: str

    def __str__(self) -> str:
        return f"invalid pattern {self.pattern!r}: {self.reason}"


@dataclass(frozen=True)
class FileDiscoveryError(FileFusionError):
    """Raised when one or more roots could not be walked.

    The files matched under the roots that did succeed are kept in ``matches``.
    """

    message: str
    errors: tuple[Exception, ...] = ()
    matches: frozenset[Path] = field(default_factory=frozenset)

    def __str__(self) -> str:
        if self.errors:
            return f"{self.message}: {self.errors[0]}"
        return self.message


@dataclass(frozen=True)
class NoFilesFoundError(FileFusionError):
    """Raised when discovery finished without a single match."""

    patterns: str
    excludes: str
    roots: tuple[str, ...]

    def __str__(self) -> str:
        return (
            f"no files found matching pattern(s) {self.patterns!r} "
            f"(excluding {self.excludes!r}) in {', '.join(self.roots)}"
        )


@dataclass(frozen=True)
class MixError(FileFusionError):
    """Raised (or collected) when a single file cannot be processed."""

    message: str
    file: str = ""

    def __str__(self) -> str:
        if self.file:
            return f"file {self.file}: {self.message}"
        return self.message


@dataclass(frozen=True)
class SizeLimitError(FileFusionError):
    """Raised when the matched files cannot fit the configured ceilings."""

    message: str
    total: int = 0
    limit: int = 0

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class OutputSizeExceededError(FileFusionError):
    """Raised when the serialized document is larger than the output ceiling."""

    path: Path
    size: int
    limit: int

    def __str__(self) -> str:
        return (
            f"output size ({self.size} bytes) exceeds maximum allowed size "
            f"({self.limit} bytes) for {self.path}"
        )


@dataclass(frozen=True)
class OutputError(FileFusionError):
    """Raised when the output document cannot be written or published."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass(frozen=True)
class CleanerError(FileFusionError):
    """Raised by a cleaner that cannot transform its input."""

    language: str
    message: str

    def __str__(self) -> str:
        return f"{self.language} cleaner: {self.message}"
