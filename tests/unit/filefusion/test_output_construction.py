from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
import yaml

from filefusion import output_construction
from filefusion.config import FileContent, OutputType
from filefusion.exceptions import OutputError, OutputSizeExceededError
from filefusion.file_manipulation import normalize_output_path
from filefusion.output_construction import OutputGenerator, xml_escape

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

WORK_DIR = "/home/user/project"


def _content(path: str, text: str) -> FileContent:
    data = text.encode("utf-8")
    return FileContent(
        path=path,
        name=path.rsplit("/", 1)[-1],
        content=data,
        extension=path.rsplit(".", 1)[-1],
        size=len(data),
    )


@pytest.mark.unit
def test_xml_escapes_all_five_characters() -> None:
    assert xml_escape("<tag>&\"quote\"</tag> 'x'") == (
        "&lt;tag&gt;&amp;&quot;quote&quot;&lt;/tag&gt; &apos;x&apos;"
    )


@pytest.mark.unit
def test_generate_xml(tmp_path: Path) -> None:
    output = tmp_path / "out.xml"
    generator = OutputGenerator(output, OutputType.XML, 10_000, work_dir=WORK_DIR)

    size = generator.generate([_content("a&b.go", '<tag>&"quote"</tag>'), _content("b.go", "x")])

    text = output.read_text(encoding="utf-8")
    assert size == output.stat().st_size
    assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<documents>\n')
    assert '<document index="1">\n<source>project/a&amp;b.go</source>' in text
    assert "<document_content>&lt;tag&gt;&amp;&quot;quote&quot;&lt;/tag&gt;</document_content>" in text
    assert '<document index="2">\n<source>project/b.go</source>' in text
    assert text.endswith("</document>\n</documents>\n")


@pytest.mark.unit
def test_generate_xml_without_documents(tmp_path: Path) -> None:
    output = tmp_path / "empty.xml"

    OutputGenerator(output, OutputType.XML, 10_000, work_dir=WORK_DIR).generate([])

    assert output.read_text(encoding="utf-8") == (
        '<?xml version="1.0" encoding="UTF-8"?>\n<documents>\n</documents>\n'
    )


@pytest.mark.unit
def test_generate_json(tmp_path: Path) -> None:
    output = tmp_path / "out.json"

    OutputGenerator(output, OutputType.JSON, 10_000, work_dir=WORK_DIR).generate(
        [_content("src/a.py", "print('é')\n")],
    )

    text = output.read_text(encoding="utf-8")
    assert '\n  "documents": [\n    {\n      "index": 1,' in text
    assert json.loads(text) == {
        "documents": [
            {"index": 1, "source": "project/src/a.py", "document_content": "print('é')\n"},
        ],
    }


@pytest.mark.unit
def test_invalid_utf8_is_replaced_not_dropped(tmp_path: Path) -> None:
    output = tmp_path / "out.json"
    data = b"ab\xffcd"
    file = FileContent(path="bin.txt", name="bin.txt", content=data, extension="txt", size=len(data))

    OutputGenerator(output, OutputType.JSON, 10_000, work_dir=WORK_DIR).generate([file])

    documents = json.loads(output.read_text(encoding="utf-8"))["documents"]
    assert documents[0]["document_content"] == "ab\ufffdcd"


@pytest.mark.unit
def test_generate_yaml(tmp_path: Path) -> None:
    output = tmp_path / "out.yaml"

    OutputGenerator(output, OutputType.YAML, 10_000, work_dir=WORK_DIR).generate(
        [_content("a.go", "package a\n\nfunc A() {}\n"), _content("b.go", "single line")],
    )

    text = output.read_text(encoding="utf-8")
    assert text.startswith("documents:\n- index: 1\n  source: project/a.go\n  document_content: |")
    assert yaml.safe_load(text) == {
        "documents": [
            {"index": 1, "source": "project/a.go", "document_content": "package a\n\nfunc A() {}\n"},
            {"index": 2, "source": "project/b.go", "document_content": "single line"},
        ],
    }


@pytest.mark.unit
def test_oversized_output_leaves_target_untouched(tmp_path: Path) -> None:
    output = tmp_path / "out.xml"
    output.write_text("previous", encoding="utf-8")
    generator = OutputGenerator(output, OutputType.XML, 100, work_dir=WORK_DIR)

    with pytest.raises(OutputSizeExceededError) as exc_info:
        generator.generate([_content("big.go", "x" * 500)])

    assert exc_info.value.limit == 100
    assert exc_info.value.size > 100
    assert output.read_text(encoding="utf-8") == "previous"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["out.xml"]


@pytest.mark.unit
def test_oversized_output_creates_nothing(tmp_path: Path) -> None:
    output = tmp_path / "nested" / "out.json"

    with pytest.raises(OutputSizeExceededError):
        OutputGenerator(output, OutputType.JSON, 10, work_dir=WORK_DIR).generate([_content("a.go", "abc")])

    assert not output.exists()
    assert list(output.parent.iterdir()) == []


@pytest.mark.unit
def test_failed_rename_is_an_output_error(tmp_path: Path, mocker: MockerFixture) -> None:
    output = tmp_path / "out.xml"
    mocker.patch.object(output_construction.os, "replace", side_effect=OSError("read-only"))

    with pytest.raises(OutputError, match="read-only"):
        OutputGenerator(output, OutputType.XML, 10_000, work_dir=WORK_DIR).generate([_content("a.go", "a")])

    assert list(tmp_path.iterdir()) == []


@pytest.mark.unit
def test_documents_keep_the_given_order() -> None:
    generator = OutputGenerator("out.xml", OutputType.XML, 10, work_dir=WORK_DIR)

    documents = generator.build_documents([_content("b.go", ""), _content("a.go", "")])

    assert [(d.index, d.source) for d in documents] == [(1, "project/b.go"), (2, "project/a.go")]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("path", "work_dir", "expected"),
    [
        ("/home/user/project/file.go", "/home/user/project", "project/file.go"),
        ("/home/user/project/sub/file.go", "/home/user/project", "project/sub/file.go"),
        ("/other/path/file.go", "/home/user/project", "project/other/path/file.go"),
        ("sub/file.go", "/home/user/project", "project/sub/file.go"),
        ("./sub/../file.go", "/home/user/project", "project/file.go"),
        ("", "/home/user/project", "project"),
        ("C:\\Users\\user\\project\\file.go", "C:\\Users\\user\\project", "project/file.go"),
        ("C:\\Users\\user\\project\\sub\\file.go", "C:\\Users\\user\\project", "project/sub/file.go"),
    ],
)
def test_normalize_output_path(path: str, work_dir: str, expected: str) -> None:
    assert normalize_output_path(path, work_dir) == expected
