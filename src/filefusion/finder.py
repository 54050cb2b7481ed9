"""Concurrent discovery of the files matching a set of glob patterns."""

from __future__ import annotations

import errno
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import TYPE_CHECKING

from filefusion.config import PRUNED_DIRS, DiscoveredFile
from filefusion.exceptions import FileDiscoveryError, MixError, NoFilesFoundError
from filefusion.file_manipulation import absolute, get_real_path, relpath
from filefusion.logging import logger
from filefusion.patterns import GlobMatcher

if TYPE_CHECKING:
    from collections.abc import Sequence


class FileFinder:
    """Walk input roots in parallel and collect the files selected by the patterns.

    Each root is walked by one worker which owns its list of discoveries. The
    only state shared between workers is the set of directories already walked,
    by real path, and the links seen, guarded by one lock. A directory reached
    both directly and through a link is walked once.
    Regular files reached through several paths collapse to a single entry at
    merge time; symbolic link paths that match are always reported.
    """

    def __init__(
        self,
        includes: Sequence[str] = (),
        excludes: Sequence[str] = (),
        *,
        follow_symlinks: bool = True,
        max_workers: int | None = None,
    ) -> None:
        self.includes = tuple(includes)
        self.excludes = tuple(excludes)
        self.follow_symlinks = follow_symlinks
        self.max_workers = max_workers or os.cpu_count() or 1
        self.matcher = GlobMatcher(self.includes, self.excludes)
        self._lock = threading.Lock()
        self._seen_dirs: set[Path] = set()
        self._root_dirs: set[Path] = set()
        self._seen_links: set[Path] = set()

    def is_symlink(self, path: Path | str) -> bool:
        """Whether ``path`` was met as a symbolic link during the last discovery."""
        with self._lock:
            return absolute(path) in self._seen_links

    @staticmethod
    def get_real_path(path: Path | str) -> Path:
        """Resolve every link in ``path`` (see :func:`file_manipulation.get_real_path`)."""
        return get_real_path(path)

    def find_matching_files(self, base_paths: Sequence[Path | str]) -> set[Path]:
        """Discover every file under ``base_paths`` that the patterns select.

        Args:
            base_paths (Sequence[Path | str]): directories or files to search

        Raises:
            FileDiscoveryError: if a root could not be walked; the files matched
                under the other roots are attached as ``matches``
            NoFilesFoundError: if no file matched at all

        Returns:
            set[Path]: absolute, unresolved paths of the matching files
        """
        roots = list(dict.fromkeys(absolute(p) for p in base_paths))
        with self._lock:
            self._seen_dirs.clear()
            self._seen_links.clear()
            self._root_dirs.clear()
            for root in roots:
                try:
                    self._root_dirs.add(get_real_path(root))
                except (OSError, RuntimeError):
                    continue
            self._seen_dirs.update(self._root_dirs)

        discovered: list[DiscoveredFile] = []
        errors: list[Exception] = []
        if roots:
            workers = max(1, min(self.max_workers, len(roots)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {executor.submit(self._walk_root, root): root for root in roots}
                for future in as_completed(futures):
                    root = futures[future]
                    try:
                        found, entry_errors = future.result()
                    except OSError as e:
                        logger.warning("Error walking path %s: %s", root, e)
                        errors.append(e)
                        continue
                    discovered.extend(found)
                    errors.extend(entry_errors)

        matches = self._merge(discovered)
        if errors:
            raise FileDiscoveryError(
                "error finding files",
                errors=tuple(errors),
                matches=frozenset(matches),
            )
        if not matches:
            raise NoFilesFoundError(
                patterns=",".join(self.includes),
                excludes=",".join(self.excludes),
                roots=tuple(str(r) for r in roots),
            )
        return matches

    @staticmethod
    def _merge(discovered: Sequence[DiscoveredFile]) -> set[Path]:
        # One path per real file: the canonical one if seen, else the smallest.
        def rank(path: Path, real: Path) -> tuple[bool, str]:
            return path != real, str(path)

        by_real: dict[Path, Path] = {}
        links: set[Path] = set()
        for item in discovered:
            if item.is_symlink:
                links.add(item.path)
                continue
            kept = by_real.get(item.real_path)
            if kept is None or rank(item.path, item.real_path) < rank(kept, item.real_path):
                by_real[item.real_path] = item.path
        return set(by_real.values()) | links

    def _walk_root(self, root: Path) -> tuple[list[DiscoveredFile], list[Exception]]:
        if not os.path.lexists(root):
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(root))

        logger.debug("Walking %s", root)
        found: list[DiscoveredFile] = []
        errors: list[Exception] = []
        if root.is_dir():
            self._walk_tree(root, root, found, errors)
        else:
            self._handle_entry(root, root, found, errors)
        logger.debug("Finished walking %s: %d match(es)", root, len(found))
        return found, errors

    def _walk_tree(
        self,
        root: Path,
        top: Path,
        found: list[DiscoveredFile],
        errors: list[Exception],
    ) -> None:
        def onerror(err: OSError) -> None:
            if isinstance(err, PermissionError | FileNotFoundError):
                logger.warning("Skipping %s: %s", err.filename, err)
                return
            raise err

        for dirpath, dirnames, filenames in os.walk(top, onerror=onerror):
            current = Path(dirpath)
            kept: list[str] = []
            links: list[Path] = []
            for name in sorted(d for d in dirnames if d not in PRUNED_DIRS):
                entry = current / name
                if entry.is_symlink():
                    links.append(entry)
                elif self._claim_dir(entry):
                    kept.append(name)
            dirnames[:] = kept
            # Links last, so a sibling target is already claimed.
            for entry in links:
                self._handle_entry(root, entry, found, errors)
            for name in sorted(filenames):
                self._handle_entry(root, current / name, found, errors)

    def _claim_dir(self, path: Path) -> bool:
        """Record a regular directory; False if its target was already walked."""
        try:
            real = get_real_path(path)
        except (OSError, RuntimeError):
            return True
        with self._lock:
            if real in self._seen_dirs and real not in self._root_dirs:
                logger.debug("Already walked %s, skipping %s", real, path)
                return False
            self._seen_dirs.add(real)
        return True

    def _handle_entry(
        self,
        root: Path,
        path: Path,
        found: list[DiscoveredFile],
        errors: list[Exception],
    ) -> None:
        try:
            is_link = path.is_symlink()
        except OSError as e:
            errors.append(MixError(f"error getting file info: {e}", file=str(path)))
            return

        if not is_link:
            try:
                real = get_real_path(path)
            except OSError:
                real = path
            self._match(root, path, real, found, is_symlink=False)
            return

        with self._lock:
            self._seen_links.add(path)
        if not self.follow_symlinks:
            self._match(root, path, path, found, is_symlink=True)
            return

        try:
            real = get_real_path(path)
        except (OSError, RuntimeError) as e:
            logger.debug("Unresolvable symlink %s: %s", path, e)
            self._match(root, path, path, found, is_symlink=True)
            return

        if real.is_dir():
            with self._lock:
                walked = real in self._seen_dirs
                self._seen_dirs.add(real)
            if walked:
                logger.debug("Already walked %s, skipping link %s", real, path)
                return
            self._walk_tree(root, path, found, errors)
            return
        self._match(root, path, real, found, is_symlink=True)

    def _match(
        self,
        root: Path,
        path: Path,
        real: Path,
        found: list[DiscoveredFile],
        *,
        is_symlink: bool,
    ) -> None:
        rel = path.name if path == root else relpath(path, root)
        if self.matcher.should_include_file(rel):
            found.append(DiscoveredFile(path=path, real_path=real, is_symlink=is_symlink))
