"""Pipeline wiring: patterns, discovery, validation, grouping, reading, output."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field

from filefusion.config import OutputTarget, OutputType
from filefusion.exceptions import MixError, PatternError
from filefusion.file_manipulation import absolute, format_size
from filefusion.finder import FileFinder
from filefusion.logging import logger
from filefusion.manager import FileManager
from filefusion.output_construction import OutputGenerator
from filefusion.patterns import PatternValidator
from filefusion.processor import FileProcessor

if TYPE_CHECKING:
    from collections.abc import Sequence

    from filefusion.config import FileContent
    from filefusion.settings import Settings


class MatchedFile(BaseModel):
    """A discovered file and its size on disk."""

    model_config = ConfigDict(frozen=True)

    path: Path
    size: int = Field(..., ge=0)


class ScanResult(BaseModel):
    """Files matched under a set of roots, sorted by path."""

    model_config = ConfigDict(frozen=True)

    files: tuple[MatchedFile, ...] = ()

    @computed_field
    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)

    def within(self, max_file_size: int) -> ScanResult:
        """The files no larger than ``max_file_size``."""
        return ScanResult(files=tuple(f for f in self.files if f.size <= max_file_size))


class MixReport(BaseModel):
    """Outcome of one output file."""

    model_config = ConfigDict(frozen=True)

    output_path: Path
    format: OutputType
    documents: int = Field(..., ge=0)
    size: int = Field(..., ge=0, description="Published size, or content size for a dry run")
    written: bool = True


class Mixer:
    """Run the discovery-to-output pipeline for a :class:`Settings` value.

    Patterns are validated when the mixer is built, before the filesystem is
    touched.
    """

    def __init__(self, settings: Settings, work_dir: Path | str | None = None) -> None:
        self.settings = settings
        self.work_dir = absolute(work_dir) if work_dir is not None else Path.cwd()
        self.validator = PatternValidator()
        self.includes, self.excludes = self.expand_patterns(settings.pattern, settings.exclude)
        self.finder = FileFinder(
            self.includes,
            self.excludes,
            follow_symlinks=settings.follow_symlinks,
        )
        self.manager = FileManager(
            settings.max_file_size,
            settings.max_output_size,
            settings.format or OutputType.XML,
        )

    def expand_patterns(self, pattern: str, exclude: str) -> tuple[list[str], list[str]]:
        """Expand both pattern strings; ``!`` on an include turns it into an exclude.

        Raises:
            PatternError: if a pattern is invalid or an exclude starts with ``!``
        """
        includes: list[str] = []
        excludes: list[str] = []
        for concrete in self.validator.expand(pattern):
            if concrete.startswith("!"):
                if concrete[1:]:
                    excludes.append(concrete[1:])
            else:
                includes.append(concrete)
        for concrete in self.validator.expand(exclude):
            if concrete.startswith("!"):
                raise PatternError(concrete, "negation is only allowed in include patterns")
            excludes.append(concrete)
        return includes, list(dict.fromkeys(excludes))

    def scan(self, inputs: Sequence[Path | str]) -> ScanResult:
        """Discover the matching files under ``inputs`` with their sizes.

        Raises:
            FileDiscoveryError: if a root could not be walked
            NoFilesFoundError: if nothing matched
            MixError: if a matched file cannot be stat'ed
        """
        matched: list[MatchedFile] = []
        for path in sorted(self.finder.find_matching_files(inputs)):
            try:
                size = path.stat().st_size
            except OSError as e:
                raise MixError(f"error getting file info: {e}", file=str(path)) from e
            matched.append(MatchedFile(path=path, size=size))
        return ScanResult(files=tuple(matched))

    def targets(
        self,
        inputs: Sequence[Path | str],
        outputs: Sequence[Path | str] = (),
    ) -> list[OutputTarget]:
        """Output targets for a run; derived from ``inputs`` when ``outputs`` is empty."""
        paths = list(outputs) or self.manager.derive_output_paths(inputs)
        return [OutputTarget.from_path(p, self.settings.format) for p in paths]

    def mix(
        self,
        inputs: Sequence[Path | str] | None = None,
        outputs: Sequence[Path | str] | None = None,
        files: Sequence[Path] | None = None,
    ) -> list[MixReport]:
        """Produce one document per output group.

        Args:
            inputs (Sequence[Path | str] | None): roots, the settings' input paths by default
            outputs (Sequence[Path | str] | None): output files, the settings' outputs by default
            files (Sequence[Path] | None): already discovered files; discovery runs when None

        Raises:
            FileFusionError: on the first hard error of any stage

        Returns:
            list[MixReport]: one report per group, in group order
        """
        roots = list(inputs) if inputs is not None else list(self.settings.input_paths)
        targets = self.targets(roots, outputs if outputs is not None else self.settings.outputs)

        if files is None:
            files = sorted(self.finder.find_matching_files(roots))
        valid = self.manager.validate_files(files)
        groups = self.manager.group_files_by_output(valid, targets, base_dir=self.work_dir)

        processor = FileProcessor(roots, self.settings.max_file_size, self.settings.cleaner_options)
        reports: list[MixReport] = []
        for group in groups:
            contents, error = processor.process_files(group.files)
            if error is not None:
                raise error
            contents.sort(key=_content_order)
            target = group.output_target

            if self.settings.dry_run:
                size = sum(c.size for c in contents)
                logger.info("Dry run: %s would hold %d documents", target.path, len(contents))
                reports.append(
                    MixReport(
                        output_path=target.path,
                        format=target.format,
                        documents=len(contents),
                        size=size,
                        written=False,
                    ),
                )
                continue

            generator = OutputGenerator(
                target.path,
                target.format,
                self.settings.max_output_size,
                work_dir=self.work_dir,
            )
            size = generator.generate(contents)
            logger.debug("Output %s: %s", target.path, format_size(size))
            reports.append(
                MixReport(
                    output_path=target.path,
                    format=target.format,
                    documents=len(contents),
                    size=size,
                ),
            )
        return reports


def _content_order(content: FileContent) -> tuple[str, bytes]:
    return content.path, content.content
