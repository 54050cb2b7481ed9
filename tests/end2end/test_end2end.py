import json
from pathlib import Path

import pytest
import yaml

from filefusion import cli


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PATTERN", "EXCLUDE", "MAX_FILE_SIZE", "MAX_OUTPUT_SIZE"):
        monkeypatch.delenv(f"FILEFUSION_{name}", raising=False)


def _make_repo(root: Path) -> None:
    files = {
        "cmd/main.go": "package main\n\nfunc main() {}\n",
        "cmd/main_test.go": "package main\n",
        "config/app.yaml": "name: demo\n",
        "web/index.ts": "export const x = 1 < 2;\n",
        "vendor/lib/lib.go": "package lib\n",
        ".git/HEAD": "ref: refs/heads/main\n",
    }
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


def test_end_to_end_xml_export(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    repo = tmp_path / "demo"
    _make_repo(repo)
    monkeypatch.chdir(repo)

    exit_code = cli.main(
        [
            ".",
            "--pattern",
            "*.{go,ts},!*_test.go",
            "--exclude",
            "vendor/**",
        ],
    )

    assert exit_code == 0
    text = (repo / "demo.xml").read_text(encoding="utf-8")
    assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<documents>\n')
    assert '<document index="1">\n<source>demo/cmd/main.go</source>' in text
    assert '<document index="2">\n<source>demo/web/index.ts</source>' in text
    assert "export const x = 1 &lt; 2;" in text
    assert "main_test.go" not in text
    assert "vendor" not in text
    assert "app.yaml" not in text
    assert text.endswith("</documents>\n")


def test_end_to_end_json_export(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    repo = tmp_path / "demo"
    _make_repo(repo)
    monkeypatch.chdir(repo)
    output = tmp_path / "context.json"

    exit_code = cli.main([".", "-o", str(output), "-p", "*.yaml,*.ts"])

    assert exit_code == 0
    documents = json.loads(output.read_text(encoding="utf-8"))["documents"]
    assert documents == [
        {"index": 1, "source": "demo/config/app.yaml", "document_content": "name: demo\n"},
        {"index": 2, "source": "demo/web/index.ts", "document_content": "export const x = 1 < 2;\n"},
    ]


def test_end_to_end_forced_yaml_format(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    repo = tmp_path / "demo"
    _make_repo(repo)
    monkeypatch.chdir(repo)

    exit_code = cli.main([".", "--format", "yaml", "-p", "main.go"])

    assert exit_code == 0
    data = yaml.safe_load((repo / "demo.yaml").read_text(encoding="utf-8"))
    assert data["documents"][0]["source"] == "demo/cmd/main.go"
    assert data["documents"][0]["document_content"] == "package main\n\nfunc main() {}\n"
