from __future__ import annotations

import os
import posixpath
import sys
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

_SIZE_UNITS = "KMGTPE"


def to_posix(path: Path | str) -> str:
    """Return ``path`` as a string with ``/`` separators.

    Args:
        path (Path | str): the path to convert

    Returns:
        str: the path with every backslash replaced by a forward slash
    """
    return str(path).replace("\\", "/")


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return to_posix(path.relative_to(root))
    except ValueError:
        return to_posix(path)


def best_root(path: Path, roots: Sequence[Path]) -> Path | None:
    """Pick the deepest root that contains ``path``.

    Args:
        path (Path): an absolute file path
        roots (Sequence[Path]): absolute candidate roots

    Returns:
        Path | None: the containing root with the most segments, or None
    """
    best: Path | None = None
    for root in roots:
        if path == root or root in path.parents:
            if best is None or len(root.parts) > len(best.parts):
                best = root
    return best


def root_relative(path: Path, roots: Sequence[Path]) -> str:
    """Compute the slash-normalized path of ``path`` relative to its input root.

    A root that is itself a file yields the file name. A path outside every
    root is returned whole (slash-normalized).

    Args:
        path (Path): an absolute file path
        roots (Sequence[Path]): absolute input roots

    Returns:
        str: the relative path
    """
    root = best_root(path, roots)
    if root is None:
        return to_posix(path)
    if root == path:
        return path.name
    return relpath(path, root)


def get_real_path(path: Path | str) -> Path:
    """Resolve every symbolic link in ``path``.

    On macOS the ``/private`` prefix is dropped so that ``/tmp`` and
    ``/private/tmp`` resolve to the same key.

    Args:
        path (Path | str): the path to resolve

    Raises:
        OSError: if the path (or a link target) does not exist
        RuntimeError: if the links form a loop

    Returns:
        Path: the resolved path
    """
    real = Path(path).resolve(strict=True)
    if sys.platform == "darwin":
        posix = real.as_posix()
        if posix.startswith("/private/"):
            real = Path(posix[len("/private") :])
    return real


def strip_extension(path: str) -> str:
    """Drop the last extension of the final path segment."""
    root, _ext = posixpath.splitext(path)
    return root


def path_segments(path: Path | str) -> list[str]:
    """Split a path into its non-empty, non-``.`` segments (separator agnostic)."""
    normalized = posixpath.normpath(to_posix(path))
    return [seg for seg in normalized.split("/") if seg and seg != "."]


def common_segment_count(a: Sequence[str], b: Sequence[str]) -> int:
    """Count the leading segments ``a`` and ``b`` share."""
    count = 0
    for left, right in zip(a, b, strict=False):
        if left != right:
            break
        count += 1
    return count


def normalize_output_path(path: str, work_dir: str) -> str:
    """Rewrite ``path`` relative to the last segment of ``work_dir``.

    Rules, applied in order:

    - backslashes become ``/`` and a leading drive letter (``C:``) is dropped,
      on both arguments;
    - leading slashes are stripped and ``.``/``..`` segments collapsed;
    - an empty path yields the last working directory segment alone;
    - a path under the working directory keeps only its part below it;
    - any other path (relative, or outside the working tree) is kept whole.

    The result is always ``<last segment>/<rest>``.

    Args:
        path (str): the path to normalize
        work_dir (str): the working directory

    Returns:
        str: the portable path
    """
    work = _strip_drive(to_posix(work_dir))
    work_parts = path_segments(work.lstrip("/"))
    last = work_parts[-1] if work_parts else ""
    if not path:
        return last

    target = _strip_drive(to_posix(path)).lstrip("/")
    parts = path_segments(target)
    if parts[: len(work_parts)] == work_parts and work_parts:
        parts = parts[len(work_parts) :]
    return str(PurePosixPath(last, *parts)) if last else "/".join(parts)


def _strip_drive(path: str) -> str:
    if len(path) >= 2 and path[1] == ":":  # noqa: PLR2004
        return path[2:]
    return path


def format_size(size: int) -> str:
    """Render a byte count with a binary unit.

    Args:
        size (int): number of bytes

    Returns:
        str: e.g. ``"512 B"``, ``"1.5 KB"``, ``"2.0 MB"``
    """
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {_SIZE_UNITS[exp]}B"


def absolute(path: Path | str) -> Path:
    """Absolute version of ``path`` without resolving symbolic links."""
    return Path(os.path.abspath(path))
