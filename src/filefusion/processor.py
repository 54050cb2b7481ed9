"""Concurrent reading (and optional cleaning) of discovered files."""

from __future__ import annotations

import stat
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import TYPE_CHECKING

from filefusion.cleaner import Cleaner, CleanerOptions
from filefusion.config import MAX_PROCESSOR_WORKERS, FileContent, Language, guess_language
from filefusion.exceptions import FileFusionError, MixError
from filefusion.file_manipulation import absolute, root_relative
from filefusion.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    CleanerFactory = Callable[[Language, CleanerOptions], Cleaner]


class CleanerCache:
    """Per-run cache of cleaners, one per language, created on first use."""

    def __init__(self, options: CleanerOptions, factory: CleanerFactory = Cleaner) -> None:
        self.options = options
        self._factory = factory
        self._cleaners: dict[Language, Cleaner] = {}
        self._lock = threading.Lock()

    def get(self, language: Language) -> Cleaner:
        """Return the cleaner for ``language``, creating it at most once."""
        cleaner = self._cleaners.get(language)
        if cleaner is not None:
            return cleaner
        with self._lock:
            cleaner = self._cleaners.get(language)
            if cleaner is None:
                logger.debug("Creating cleaner for %s", language)
                cleaner = self._factory(language, self.options)
                self._cleaners[language] = cleaner
        return cleaner

    def __len__(self) -> int:
        return len(self._cleaners)


class FileProcessor:
    """Read files into :class:`FileContent` records on a bounded worker pool."""

    def __init__(
        self,
        input_paths: Sequence[Path | str],
        max_file_size: int,
        cleaner_options: CleanerOptions | None = None,
        cleaner_factory: CleanerFactory = Cleaner,
    ) -> None:
        self.roots = [absolute(p) for p in input_paths]
        self.max_file_size = max_file_size
        self.cleaner_options = cleaner_options
        self.cleaners = (
            CleanerCache(cleaner_options, cleaner_factory) if cleaner_options is not None else None
        )

    def process_files(
        self,
        paths: Sequence[Path | str],
    ) -> tuple[list[FileContent], FileFusionError | None]:
        """Read every path concurrently.

        Oversized files are skipped with a warning. Per-file failures do not stop
        the other workers; the first one collected is returned next to the
        records that were read.

        Args:
            paths (Sequence[Path | str]): the files to read

        Returns:
            tuple[list[FileContent], FileFusionError | None]: the records in
            completion order and the first hard error, if any
        """
        if not paths:
            return [], None

        contents: list[FileContent] = []
        errors: list[FileFusionError] = []
        workers = min(len(paths), MAX_PROCESSOR_WORKERS)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.process_file, Path(p)) for p in paths]
            for future in as_completed(futures):
                try:
                    content = future.result()
                except FileFusionError as e:
                    errors.append(e)
                    continue
                if content is not None:
                    contents.append(content)
        return contents, errors[0] if errors else None

    def process_file(self, path: Path) -> FileContent | None:
        """Read one file; None means it was skipped for its size.

        Raises:
            MixError: if the path is a directory or cannot be read
        """
        path = absolute(path)
        try:
            st = path.stat()
        except OSError as e:
            raise MixError(f"error getting file info: {e}", file=str(path)) from e
        if stat.S_ISDIR(st.st_mode):
            raise MixError("is a directory", file=str(path))
        if st.st_size > self.max_file_size:
            logger.warning(
                "Skipping %s: size %d bytes exceeds limit of %d bytes",
                path,
                st.st_size,
                self.max_file_size,
            )
            return None

        try:
            content = path.read_bytes()
        except OSError as e:
            raise MixError(f"error reading file: {e}", file=str(path)) from e

        if self.cleaners is not None and content:
            content = self.clean_content(path, content)

        return FileContent(
            path=root_relative(path, self.roots),
            name=path.name,
            content=content,
            extension=path.suffix.lower().removeprefix("."),
            size=len(content),
        )

    def clean_content(self, path: Path, content: bytes) -> bytes:
        """Run the language cleaner, falling back to ``content`` on any failure."""
        language = guess_language(path)
        if language is None or self.cleaners is None:
            return content
        try:
            return self.cleaners.get(language).clean(content)
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to clean %s: %s", path, e)
            return content
