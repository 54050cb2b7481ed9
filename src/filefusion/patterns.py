"""Glob pattern validation, splitting, brace expansion and matching.

Patterns reach the matcher in three steps:

1. ``split_patterns`` cuts a user string on top-level, unescaped commas;
2. ``expand_braces`` rewrites every ``{a,b}`` group into concrete alternatives;
3. ``validate`` checks each concrete pattern, ending with the syntax check of
   :mod:`wcmatch.glob`.

Matching is per path segment: ``*``, ``?`` and ``[...]`` never cross a ``/``
and ``**`` spans any number of directories. A pattern containing ``/`` is
tested against the root-relative path, any other pattern against the file name
only. Leading ``#`` and ``!`` are literal characters here.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from wcmatch import glob

from filefusion.config import BANNED_PATTERN_SUBSTRINGS, MAX_PATTERN_LENGTH
from filefusion.exceptions import PatternError

if TYPE_CHECKING:
    from collections.abc import Sequence

_ESCAPE = "\\"
_GLOB_FLAGS = glob.GLOBSTAR | glob.DOTGLOB | glob.FORCEUNIX


def _check_balance(pattern: str, opening: str, closing: str, name: str) -> None:
    depth = 0
    escaped = False
    for pos, ch in enumerate(pattern):
        if escaped:
            escaped = False
            continue
        if ch == _ESCAPE:
            escaped = True
        elif ch == opening:
            depth += 1
        elif ch == closing:
            depth -= 1
            if depth < 0:
                raise PatternError(pattern, f"unmatched closing {name} at position {pos}")
    if depth > 0:
        raise PatternError(pattern, f"unclosed {name}")


def _check_classes(pattern: str) -> None:
    """Reject empty character classes such as ``[]`` or ``[!]``."""
    escaped = False
    for pos, ch in enumerate(pattern):
        if escaped:
            escaped = False
            continue
        if ch == _ESCAPE:
            escaped = True
        elif ch == "[":
            body = pattern[pos + 1 :]
            if body[:1] in {"!", "^"}:
                body = body[1:]
            if body.startswith("]"):
                raise PatternError(pattern, f"empty character class at position {pos}")


def _glob_match(patterns: Sequence[str], path: str) -> bool:
    return bool(patterns) and glob.globmatch(path, list(patterns), flags=_GLOB_FLAGS)


class PatternValidator:
    """Validate and expand comma-separated glob pattern strings."""

    def __init__(
        self,
        max_pattern_length: int = MAX_PATTERN_LENGTH,
        banned_patterns: Sequence[str] = BANNED_PATTERN_SUBSTRINGS,
    ) -> None:
        self.max_pattern_length = max_pattern_length
        self.banned_patterns = tuple(banned_patterns)

    def validate(self, pattern: str) -> None:
        """Check one concrete pattern.

        Rules are applied in order and the first failure is raised: NUL byte,
        length, banned substrings, brace balance, bracket balance, empty
        character classes, then the matcher's own syntax check.

        Args:
            pattern (str): the pattern to check

        Raises:
            PatternError: naming the pattern and the failed rule
        """
        self._validate_structure(pattern)
        _check_classes(pattern)
        try:
            glob.translate(pattern, flags=_GLOB_FLAGS)
        except (ValueError, re.error) as e:
            raise PatternError(pattern, f"invalid pattern syntax: {e}") from e

    def _validate_structure(self, pattern: str) -> None:
        if "\x00" in pattern:
            raise PatternError(pattern, "pattern contains null bytes")
        if len(pattern) > self.max_pattern_length:
            raise PatternError(pattern, f"pattern too long (max {self.max_pattern_length} chars)")
        for banned in self.banned_patterns:
            if banned in pattern:
                raise PatternError(pattern, f"contains banned pattern: {banned!r}")
        _check_balance(pattern, "{", "}", "brace")
        _check_balance(pattern, "[", "]", "bracket")

    def split_patterns(self, pattern: str) -> list[str]:
        """Split on commas that are neither escaped nor inside braces.

        Escaped commas are kept as written (``\\,``). Blank alternatives are dropped
        and surrounding whitespace is stripped.

        Args:
            pattern (str): the raw, comma-separated pattern string

        Returns:
            list[str]: the alternatives, in input order
        """
        parts: list[str] = []
        current: list[str] = []
        depth = 0
        escaped = False
        for ch in pattern:
            if escaped:
                current.append(ch)
                escaped = False
                continue
            if ch == _ESCAPE:
                escaped = True
                current.append(ch)
            elif ch == "{":
                depth += 1
                current.append(ch)
            elif ch == "}":
                depth -= 1
                current.append(ch)
            elif ch == "," and depth <= 0:
                parts.append("".join(current))
                current = []
            else:
                current.append(ch)
        parts.append("".join(current))
        return [p.strip() for p in parts if p.strip()]

    def expand_braces(self, pattern: str) -> list[str]:
        """Expand every unescaped brace group, recursively.

        ``pre{a,b}post`` gives ``preapost`` and ``prebpost``; an empty alternative
        substitutes the empty string; escaped braces stay literal. The order is
        the left-to-right, depth-first order of the alternatives, duplicates removed.

        Args:
            pattern (str): one alternative from :meth:`split_patterns`

        Returns:
            list[str]: the concrete patterns
        """
        group = _first_brace_group(pattern)
        if group is None:
            return [pattern]
        start, end = group
        prefix, body, suffix = pattern[:start], pattern[start + 1 : end], pattern[end + 1 :]
        expanded: list[str] = []
        for option in _split_top_level(body):
            expanded.extend(self.expand_braces(prefix + option + suffix))
        return list(dict.fromkeys(expanded))

    def expand(self, pattern: str) -> list[str]:
        """Validate, split and brace-expand a pattern string.

        Args:
            pattern (str): the raw, comma-separated pattern string

        Raises:
            PatternError: if the string or any expanded pattern is invalid

        Returns:
            list[str]: the validated concrete patterns, in a stable order
        """
        if not pattern:
            return []
        self._validate_structure(pattern)
        result: list[str] = []
        for alternative in self.split_patterns(pattern):
            for concrete in self.expand_braces(alternative):
                self.validate(concrete)
                result.append(concrete)
        return list(dict.fromkeys(result))


def _first_brace_group(pattern: str) -> tuple[int, int] | None:
    """Locate the first top-level ``{...}`` group, ignoring escaped braces."""
    start = -1
    depth = 0
    escaped = False
    for pos, ch in enumerate(pattern):
        if escaped:
            escaped = False
            continue
        if ch == _ESCAPE:
            escaped = True
        elif ch == "{":
            if depth == 0:
                start = pos
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                return start, pos
    return None


def _split_top_level(body: str) -> list[str]:
    """Split a brace body on commas outside nested braces; empty options kept."""
    options: list[str] = []
    current: list[str] = []
    depth = 0
    escaped = False
    for ch in body:
        if escaped:
            current.append(ch)
            escaped = False
            continue
        if ch == _ESCAPE:
            escaped = True
            current.append(ch)
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        elif ch == "," and depth == 0:
            options.append("".join(current))
            current = []
            continue
        current.append(ch)
    options.append("".join(current))
    return options


class GlobMatcher:
    """Include and exclude glob patterns.

    ``should_include_file`` is a pure function of the patterns and the path.
    """

    def __init__(self, includes: Sequence[str] = (), excludes: Sequence[str] = ()) -> None:
        self.includes = tuple(includes)
        self.excludes = tuple(excludes)
        self._include_names, self._include_paths = self._split(self.includes)
        self._exclude_names, self._exclude_paths = self._split(self.excludes)

    @staticmethod
    def _split(patterns: Sequence[str]) -> tuple[tuple[str, ...], tuple[str, ...]]:
        names = tuple(p for p in patterns if "/" not in p)
        paths = tuple(p for p in patterns if "/" in p)
        return names, paths

    @staticmethod
    def _matches(names: Sequence[str], paths: Sequence[str], rel_path: str, basename: str) -> bool:
        return _glob_match(names, basename) or _glob_match(paths, rel_path)

    def should_include_file(self, rel_path: str) -> bool:
        """Decide whether a root-relative, slash-separated path is selected.

        Excludes are checked first and win. With no include patterns every
        non-excluded file is selected; otherwise at least one include must match.

        Args:
            rel_path (str): the path relative to the walked root

        Returns:
            bool: True if the file belongs to the result set
        """
        basename = rel_path.rsplit("/", 1)[-1]
        if self._matches(self._exclude_names, self._exclude_paths, rel_path, basename):
            return False
        if not self.includes:
            return True
        return self._matches(self._include_names, self._include_paths, rel_path, basename)
