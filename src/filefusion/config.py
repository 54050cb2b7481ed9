from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field

from filefusion.exceptions import ConfigurationError


class OutputType(StrEnum):
    """Serialization format of the generated document."""

    XML = "XML"
    JSON = "JSON"
    YAML = "YAML"

    @property
    def default_extension(self) -> str:
        """Extension used when an output file name has to be invented."""
        return _DEFAULT_EXTENSION[self]


class Language(StrEnum):
    """Languages the cleaner knows how to strip."""

    GO = auto()
    JAVA = auto()
    PYTHON = auto()
    SWIFT = auto()
    KOTLIN = auto()
    SQL = auto()
    HTML = auto()
    JAVASCRIPT = auto()
    TYPESCRIPT = auto()
    CSS = auto()
    CPP = auto()
    CSHARP = auto()
    PHP = auto()
    RUBY = auto()
    BASH = auto()


_DEFAULT_EXTENSION: dict[OutputType, str] = {
    OutputType.XML: ".xml",
    OutputType.JSON: ".json",
    OutputType.YAML: ".yaml",
}

OUTPUT_EXT2TYPE: dict[str, OutputType] = {
    ".json": OutputType.JSON,
    ".xml": OutputType.XML,
    ".yaml": OutputType.YAML,
    ".yml": OutputType.YAML,
}

EXT2LANG: dict[str, Language] = {
    ".bash": Language.BASH,
    ".cc": Language.CPP,
    ".cpp": Language.CPP,
    ".cs": Language.CSHARP,
    ".css": Language.CSS,
    ".go": Language.GO,
    ".h": Language.CPP,
    ".html": Language.HTML,
    ".java": Language.JAVA,
    ".js": Language.JAVASCRIPT,
    ".kt": Language.KOTLIN,
    ".php": Language.PHP,
    ".py": Language.PYTHON,
    ".rb": Language.RUBY,
    ".sh": Language.BASH,
    ".sql": Language.SQL,
    ".swift": Language.SWIFT,
    ".ts": Language.TYPESCRIPT,
}

DEFAULT_PATTERN = "*.go,*.json,*.yaml,*.yml"
DEFAULT_MAX_FILE_SIZE = "10MB"
DEFAULT_MAX_OUTPUT_SIZE = "50MB"

# Directories never descended into during discovery.
PRUNED_DIRS = frozenset({".git"})

MAX_PATTERN_LENGTH = 1000
BANNED_PATTERN_SUBSTRINGS = (
    "../",
    "/..",
    "/**/../",
    "**/.*/**",
)

UNMATCHED_SUFFIX = "_unmatched"
MAX_PROCESSOR_WORKERS = 10


def guess_language(path: Path | str) -> Language | None:
    """Map a file to the cleaner language tag for its extension.

    Args:
        path (Path | str): the file path to inspect

    Returns:
        Language | None: the language, or None when the extension is not supported
    """
    return EXT2LANG.get(Path(path).suffix.lower())


def output_type_for(path: Path | str) -> OutputType:
    """Derive the output format from an output file extension.

    Args:
        path (Path | str): the output path

    Raises:
        ConfigurationError: if the extension is not one of .xml, .json, .yaml, .yml

    Returns:
        OutputType: the format matching the extension
    """
    ext = Path(path).suffix.lower()
    try:
        return OUTPUT_EXT2TYPE[ext]
    except KeyError:
        msg = f"invalid output file extension {ext!r} for {path}: must be .xml, .json, .yaml, or .yml"
        raise ConfigurationError(msg) from None


class DiscoveredFile(BaseModel):
    """A file seen during traversal, before the result set is finalized.

    Attributes:
        path: Path as discovered (may be a symbolic link).
        real_path: Fully resolved target, the deduplication key.
        is_symlink: Whether ``path`` itself is a symbolic link.
    """

    model_config = ConfigDict(frozen=True)

    path: Path
    real_path: Path
    is_symlink: bool = False


class FileContent(BaseModel):
    """Content and metadata of one processed file.

    Attributes:
        path: Root-relative path, always with ``/`` separators.
        name: Base name of the file.
        content: File bytes, after cleaning when cleaning is enabled.
        extension: Lowercased extension without the leading dot.
        size: Length of ``content`` in bytes.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Root-relative, slash-separated path")
    name: str = Field(..., description="File base name")
    content: bytes = Field(default=b"", description="File contents")
    extension: str = Field(default="", description="Extension without the dot")
    size: int = Field(..., ge=0, description="Content size in bytes")

    @computed_field
    @property
    def text(self) -> str:
        """Decoded content, undecodable bytes dropped."""
        return self.content.decode("utf-8", errors="replace")


class SizeLimits(BaseModel):
    """Per-file and aggregate ceilings, both strictly positive."""

    model_config = ConfigDict(frozen=True)

    max_file_size: int = Field(..., gt=0)
    max_output_size: int = Field(..., gt=0)


class OutputTarget(BaseModel):
    """A destination file and the format it is written in."""

    model_config = ConfigDict(frozen=True)

    path: Path
    format: OutputType

    @classmethod
    def from_path(cls, path: Path | str, override: OutputType | None = None) -> OutputTarget:
        """Build a target, deriving the format from the extension unless overridden.

        Raises:
            ConfigurationError: if no override is given and the extension is unknown
        """
        fmt = override if override is not None else output_type_for(path)
        return cls(path=Path(path), format=fmt)


class FileGroup(BaseModel):
    """Files assigned to one output target."""

    model_config = ConfigDict(frozen=True)

    output_target: OutputTarget
    files: tuple[Path, ...] = ()
