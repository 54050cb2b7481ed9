from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from filefusion import finder as finder_module
from filefusion.exceptions import FileDiscoveryError, NoFilesFoundError
from filefusion.finder import FileFinder

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

needs_symlinks = pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")


def _write(path: Path, text: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    _write(tmp_path / "a.go")
    _write(tmp_path / "sub" / "b.go")
    _write(tmp_path / "sub" / "notes.txt")
    _write(tmp_path / ".git" / "hooks" / "c.go")
    return tmp_path


@pytest.mark.unit
def test_finds_matching_files_and_prunes_git(tree: Path) -> None:
    found = FileFinder(["*.go"]).find_matching_files([tree])

    assert found == {tree / "a.go", tree / "sub" / "b.go"}


@pytest.mark.unit
def test_exclude_path_pattern(tree: Path) -> None:
    found = FileFinder(["*.go"], ["sub/**"]).find_matching_files([tree])

    assert found == {tree / "a.go"}


@pytest.mark.unit
def test_single_file_root_matches_by_name(tree: Path) -> None:
    found = FileFinder(["a.go"]).find_matching_files([tree / "a.go"])

    assert found == {tree / "a.go"}


@pytest.mark.unit
def test_several_roots_are_merged(tmp_path: Path) -> None:
    first = _write(tmp_path / "one" / "x.go").parent
    second = _write(tmp_path / "two" / "y.go").parent

    found = FileFinder(["*.go"], max_workers=2).find_matching_files([first, second])

    assert found == {first / "x.go", second / "y.go"}


@pytest.mark.unit
def test_overlapping_roots_do_not_duplicate(tree: Path) -> None:
    found = FileFinder(["*.go"]).find_matching_files([tree, tree / "sub"])

    assert found == {tree / "a.go", tree / "sub" / "b.go"}


@pytest.mark.unit
def test_missing_root_keeps_other_results(tree: Path) -> None:
    missing = tree / "does-not-exist"

    with pytest.raises(FileDiscoveryError) as exc_info:
        FileFinder(["*.go"]).find_matching_files([tree, missing])

    error = exc_info.value
    assert error.matches == frozenset({tree / "a.go", tree / "sub" / "b.go"})
    assert isinstance(error.errors[0], FileNotFoundError)
    assert "does-not-exist" in str(error)


@pytest.mark.unit
def test_no_match_is_a_distinct_error(tree: Path) -> None:
    with pytest.raises(NoFilesFoundError) as exc_info:
        FileFinder(["*.rs"], ["*.tmp"]).find_matching_files([tree])

    message = str(exc_info.value)
    assert "no files found matching pattern(s) '*.rs'" in message
    assert "(excluding '*.tmp')" in message
    assert str(tree) in message


@pytest.mark.unit
def test_permission_errors_are_skipped_with_warning(tree: Path, mocker: MockerFixture) -> None:
    warning = mocker.patch.object(finder_module.logger, "warning")
    real_walk = os.walk

    def walk(top: str, onerror: object = None, **kwargs: object) -> object:
        onerror(PermissionError(13, "Permission denied", str(tree / "locked")))  # type: ignore[operator]
        return real_walk(top, onerror=onerror, **kwargs)

    mocker.patch.object(finder_module.os, "walk", side_effect=walk)

    found = FileFinder(["*.go"]).find_matching_files([tree])

    assert tree / "a.go" in found
    warning.assert_called()


@needs_symlinks
@pytest.mark.unit
def test_file_symlink_is_reported_next_to_its_target(tree: Path) -> None:
    link = tree / "link.go"
    link.symlink_to(tree / "a.go")
    finder = FileFinder(["*.go"])

    found = finder.find_matching_files([tree])

    assert {tree / "a.go", link} <= found
    assert finder.is_symlink(link)
    assert not finder.is_symlink(tree / "a.go")
    assert finder.get_real_path(link) == finder.get_real_path(tree / "a.go")


@needs_symlinks
@pytest.mark.unit
def test_directory_symlink_is_walked_once(tmp_path: Path) -> None:
    _write(tmp_path / "real" / "x.go")
    (tmp_path / "alias").symlink_to(tmp_path / "real", target_is_directory=True)

    found = FileFinder(["*.go"]).find_matching_files([tmp_path])

    assert len(found) == 1
    assert next(iter(found)).name == "x.go"


@needs_symlinks
@pytest.mark.unit
def test_sibling_directory_link_does_not_walk_target_twice(tmp_path: Path, mocker: MockerFixture) -> None:
    _write(tmp_path / "real" / "x.go")
    (tmp_path / "alias").symlink_to(tmp_path / "real", target_is_directory=True)
    finder = FileFinder(["*.go"])
    match = mocker.spy(finder, "_match")

    found = finder.find_matching_files([tmp_path])

    assert found == {tmp_path / "real" / "x.go"}
    assert [call.args[1].name for call in match.call_args_list] == ["x.go"]


@needs_symlinks
@pytest.mark.unit
def test_symlink_cycle_terminates(tree: Path) -> None:
    (tree / "sub" / "loop").symlink_to(tree, target_is_directory=True)

    found = FileFinder(["*.go"]).find_matching_files([tree])

    assert found == {tree / "a.go", tree / "sub" / "b.go"}


@needs_symlinks
@pytest.mark.unit
def test_links_are_not_followed_when_disabled(tmp_path: Path) -> None:
    _write(tmp_path / "real" / "x.go")
    (tmp_path / "alias").symlink_to(tmp_path / "real", target_is_directory=True)
    (tmp_path / "link.go").symlink_to(tmp_path / "real" / "x.go")

    found = FileFinder(["*.go"], follow_symlinks=False).find_matching_files([tmp_path])

    assert found == {tmp_path / "real" / "x.go", tmp_path / "link.go"}


@needs_symlinks
@pytest.mark.unit
def test_broken_symlink_is_matched_on_its_own_path(tree: Path) -> None:
    broken = tree / "broken.go"
    broken.symlink_to(tree / "missing.go")

    found = FileFinder(["*.go"]).find_matching_files([tree])

    assert broken in found
