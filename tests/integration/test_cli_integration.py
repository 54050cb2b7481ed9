from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from filefusion import cli
from filefusion.finder import FileFinder


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PATTERN", "EXCLUDE", "MAX_FILE_SIZE", "MAX_OUTPUT_SIZE"):
        monkeypatch.delenv(f"FILEFUSION_{name}", raising=False)


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.mark.integration
def test_main_splits_files_across_outputs(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.chdir(tmp_path)
    _write(tmp_path / "api" / "server.go", "package api\n")
    _write(tmp_path / "web" / "app.go", "package web\n")
    _write(tmp_path / "tools" / "gen.go", "package tools\n")

    exit_code = cli.main(
        [".", "-o", "api/ctx.xml", "-o", "web/ctx.json", "--pattern", "*.go"],
    )

    assert exit_code == 0
    api = (tmp_path / "api" / "ctx.xml").read_text(encoding="utf-8")
    web = (tmp_path / "web" / "ctx.json").read_text(encoding="utf-8")
    unmatched = (tmp_path / "api" / "ctx_unmatched.xml").read_text(encoding="utf-8")
    assert "package api" in api
    assert "package web" not in api
    assert "package web" in web
    assert "package tools" in unmatched


@pytest.mark.integration
def test_main_clean_reports_final_size(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.chdir(tmp_path)
    _write(
        tmp_path / "src" / "main.go",
        "package main\n\n// entry point\nfunc main() {\n\tlog.Println(1)\n\trun()\n}\n",
    )

    exit_code = cli.main(["src", "-o", "out.xml", "-p", "*.go", "--clean"])

    assert exit_code == 0
    text = (tmp_path / "out.xml").read_text(encoding="utf-8")
    assert "entry point" not in text
    assert "log.Println" not in text
    assert "run()" in text
    out = capsys.readouterr().out
    assert "Uncompressed size:" in out
    assert "Final size (with --clean):" in out


@pytest.mark.integration
def test_main_dry_run_lists_matches_only(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.chdir(tmp_path)
    _write(tmp_path / "a.go", "package a\n")
    _write(tmp_path / "a_test.go", "package a\n")

    exit_code = cli.main([".", "-o", "out.xml", "-p", "*.go,!*_test.go", "--dry-run"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "Found 1 files matching pattern" in out
    assert "a.go (10 B)" in out
    assert "a_test.go" not in out
    assert "Dry run complete. No files will be processed." in out
    assert not (tmp_path / "out.xml").exists()


@pytest.mark.integration
def test_main_rejects_oversized_run(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.chdir(tmp_path)
    _write(tmp_path / "a.go", "x" * 700)
    _write(tmp_path / "b.go", "x" * 700)

    exit_code = cli.main([".", "-o", "out.xml", "-p", "*.go", "--max-output-size", "1KB"])

    assert exit_code == 1
    captured = capsys.readouterr()
    assert "exceeds maximum output size" in captured.out
    assert "Error:" in captured.err
    assert not (tmp_path / "out.xml").exists()


@pytest.mark.integration
def test_main_output_limit_ignores_files_over_file_limit(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.chdir(tmp_path)
    _write(tmp_path / "a.go", "a" * 50)
    _write(tmp_path / "b.go", "b" * 2000)

    exit_code = cli.main(
        [".", "-o", "out.xml", "-p", "*.go", "--max-file-size", "1000B", "--max-output-size", "1500B"],
    )

    assert exit_code == 0
    text = (tmp_path / "out.xml").read_text(encoding="utf-8")
    assert "a" * 50 in text
    assert "b.go" not in text


@pytest.mark.integration
def test_main_reads_patterns_from_environment(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("FILEFUSION_PATTERN", "*.py")
    _write(tmp_path / "tool.py", "print('hi')\n")
    _write(tmp_path / "main.go", "package main\n")

    assert cli.main([".", "-o", "out.json"]) == 0

    text = (tmp_path / "out.json").read_text(encoding="utf-8")
    assert "tool.py" in text
    assert "main.go" not in text


@pytest.mark.integration
def test_main_reports_discovery_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    mocker: MockerFixture,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.chdir(tmp_path)
    _write(tmp_path / "a.go", "package a\n")
    mocker.patch.object(FileFinder, "_walk_root", side_effect=OSError("disk gone"))

    assert cli.main([".", "-o", "out.xml", "-p", "*.go"]) == 1

    assert "error finding files" in capsys.readouterr().err
    assert not (tmp_path / "out.xml").exists()
