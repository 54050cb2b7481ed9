from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from filefusion.config import UNMATCHED_SUFFIX, FileGroup, OutputTarget, OutputType
from filefusion.exceptions import ConfigurationError, MixError, SizeLimitError
from filefusion.file_manipulation import (
    absolute,
    common_segment_count,
    format_size,
    path_segments,
    strip_extension,
    to_posix,
)
from filefusion.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = ["FileManager", "format_size", "parse_size"]

# Longest suffix first so that "MB" is not read as "B".
_SIZE_MULTIPLIERS: dict[str, int] = {
    "TB": 1024**4,
    "GB": 1024**3,
    "MB": 1024**2,
    "KB": 1024,
    "B": 1,
}


def parse_size(size: str | int) -> int:
    """Parse a human readable size such as ``"10MB"`` into bytes.

    Case and whitespace are ignored. The unit is mandatory and multipliers are
    powers of 1024.

    Args:
        size (str | int): the size string

    Raises:
        ConfigurationError: on a missing or unknown unit, a non-integer number
            or a value that is not strictly positive

    Returns:
        int: the size in bytes
    """
    text = "".join(str(size).split()).upper()
    for suffix, multiplier in _SIZE_MULTIPLIERS.items():
        if text.endswith(suffix):
            number = text[: -len(suffix)]
            break
    else:
        msg = f"invalid size format {size!r}: expected a number followed by B, KB, MB, GB or TB"
        raise ConfigurationError(msg)

    if not (number.isascii() and number.isdigit()):
        raise ConfigurationError(f"invalid size number in {size!r}")
    value = int(number)
    if value <= 0:
        raise ConfigurationError(f"size must be positive, got {size!r}")
    return value * multiplier


class FileManager:
    """Size validation, output grouping and output path derivation."""

    def __init__(
        self,
        max_file_size: int,
        max_output_size: int,
        output_type: OutputType = OutputType.XML,
    ) -> None:
        self.max_file_size = max_file_size
        self.max_output_size = max_output_size
        self.output_type = output_type

    def validate_files(self, paths: Sequence[Path]) -> list[Path]:
        """Drop oversized files and check the aggregate ceiling.

        Args:
            paths (Sequence[Path]): the discovered files

        Raises:
            MixError: if a file cannot be stat'ed
            SizeLimitError: if every file was dropped or the survivors exceed
                the maximum output size together

        Returns:
            list[Path]: the surviving files, in input order
        """
        valid: list[Path] = []
        total = 0
        for path in paths:
            try:
                size = Path(path).stat().st_size
            except OSError as e:
                raise MixError(f"error getting file info: {e}", file=str(path)) from e
            if size > self.max_file_size:
                logger.warning(
                    "Skipping %s: size %s exceeds limit of %s",
                    path,
                    format_size(size),
                    format_size(self.max_file_size),
                )
                continue
            total += size
            valid.append(Path(path))

        if not valid:
            raise SizeLimitError("no valid files found matching patterns", limit=self.max_file_size)
        if total > self.max_output_size:
            msg = (
                f"total size of files ({total} bytes) exceeds maximum output size "
                f"({self.max_output_size} bytes)"
            )
            raise SizeLimitError(msg, total=total, limit=self.max_output_size)
        return valid

    def group_files_by_output(
        self,
        files: Sequence[Path],
        targets: Sequence[OutputTarget],
        base_dir: Path | str | None = None,
    ) -> list[FileGroup]:
        """Assign every file to the output whose path it shares most segments with.

        Paths are compared without their extensions, relative to ``base_dir``
        (the current directory by default) when they live under it. Ties go to
        the target given first. Files sharing no leading segment with any target
        go to an extra ``<first target stem>_unmatched`` group, appended last.

        Args:
            files (Sequence[Path]): the files to distribute
            targets (Sequence[OutputTarget]): the candidate outputs, in priority order
            base_dir (Path | str | None): directory paths are compared from

        Raises:
            ConfigurationError: if no target is given

        Returns:
            list[FileGroup]: the non-empty groups, in target order
        """
        if not targets:
            raise ConfigurationError("at least one output target is required")
        if len(targets) == 1:
            return [FileGroup(output_target=targets[0], files=tuple(files))]

        base = absolute(base_dir) if base_dir is not None else Path.cwd()
        target_keys = [self._comparison_key(t.path, base) for t in targets]
        assigned: list[list[Path]] = [[] for _ in targets]
        unmatched: list[Path] = []
        for file in files:
            key = self._comparison_key(file, base)
            best, best_len = -1, 0
            for idx, target_key in enumerate(target_keys):
                common = common_segment_count(key, target_key)
                if common > best_len:
                    best, best_len = idx, common
            if best < 0:
                unmatched.append(Path(file))
            else:
                assigned[best].append(Path(file))

        groups = [
            FileGroup(output_target=target, files=tuple(group))
            for target, group in zip(targets, assigned, strict=True)
            if group
        ]
        if unmatched:
            groups.append(
                FileGroup(output_target=self.unmatched_target(targets[0]), files=tuple(unmatched)),
            )
        return groups

    @staticmethod
    def _comparison_key(path: Path | str, base: Path) -> list[str]:
        full = absolute(path)
        try:
            rel = full.relative_to(base)
        except ValueError:
            rel = full
        return path_segments(strip_extension(to_posix(rel)))

    @staticmethod
    def unmatched_target(first: OutputTarget) -> OutputTarget:
        """Target collecting the files no output claimed."""
        stem = strip_extension(to_posix(first.path))
        path = Path(f"{stem}{UNMATCHED_SUFFIX}{first.format.default_extension}")
        return OutputTarget(path=path, format=first.format)

    def derive_output_paths(
        self,
        inputs: Sequence[Path | str],
        custom: Path | str | None = None,
    ) -> list[Path]:
        """Compute default output files for ``inputs``.

        With ``custom`` the single result is ``<cwd>/<custom>``. Otherwise each
        input yields ``<cwd>/<basename><ext>``, ``.`` standing for the current
        directory's own name and files keeping their extension
        (``config.yaml`` gives ``config.yaml.xml``).

        Args:
            inputs (Sequence[Path | str]): the input roots
            custom (Path | str | None): an explicit output path

        Returns:
            list[Path]: the output paths
        """
        cwd = Path.cwd()
        if custom:
            return [cwd / custom]
        ext = self.output_type.default_extension
        paths: list[Path] = []
        for inp in inputs:
            name = absolute(inp).name or "output"
            paths.append(cwd / f"{name}{ext}")
        return paths
