from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape

import yaml
from pydantic import BaseModel, ConfigDict, Field

from filefusion.config import OutputType
from filefusion.exceptions import OutputError, OutputSizeExceededError
from filefusion.file_manipulation import normalize_output_path
from filefusion.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from typing import TextIO

    from filefusion.config import FileContent

    Serializer = Callable[[list["Document"], TextIO], None]

_XML_ENTITIES = {"'": "&apos;", '"': "&quot;"}

SERIALIZERS: dict[OutputType, Serializer] = {}


class Document(BaseModel):
    """One entry of the generated document list."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=1, description="1-based position in the output")
    source: str = Field(..., description="Normalized source path")
    document_content: str = Field(default="", description="File text")


def register_serializer(
    output_type: OutputType,
) -> Callable[[Serializer], Serializer]:
    """Decorator to register the writer of one output format."""

    def decorator(func: Serializer) -> Serializer:
        SERIALIZERS[output_type] = func
        return func

    return decorator


def xml_escape(text: str) -> str:
    """Escape ``& < > ' "`` as XML entities."""
    return escape(text, _XML_ENTITIES)


@register_serializer(OutputType.XML)
def write_xml(documents: list[Document], out: TextIO) -> None:
    out.write('<?xml version="1.0" encoding="UTF-8"?>\n<documents>')
    for doc in documents:
        out.write(
            f'\n<document index="{doc.index}">\n'
            f"<source>{xml_escape(doc.source)}</source>\n"
            f"<document_content>{xml_escape(doc.document_content)}</document_content>\n"
            "</document>",
        )
    out.write("\n</documents>\n")


@register_serializer(OutputType.JSON)
def write_json(documents: list[Document], out: TextIO) -> None:
    json.dump(
        {"documents": [doc.model_dump() for doc in documents]},
        out,
        indent=2,
        ensure_ascii=False,
    )
    out.write("\n")


class _BlockStyleDumper(yaml.SafeDumper):
    """Safe dumper writing multi-line strings as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_BlockStyleDumper.add_representer(str, _represent_str)


@register_serializer(OutputType.YAML)
def write_yaml(documents: list[Document], out: TextIO) -> None:
    yaml.dump(
        {"documents": [doc.model_dump() for doc in documents]},
        out,
        Dumper=_BlockStyleDumper,
        indent=2,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


class OutputGenerator:
    """Serialize content records and publish them atomically under a size ceiling."""

    def __init__(
        self,
        output_path: Path | str,
        output_type: OutputType,
        max_output_size: int,
        work_dir: Path | str | None = None,
    ) -> None:
        self.output_path = Path(output_path)
        self.output_type = output_type
        self.max_output_size = max_output_size
        self.work_dir = str(work_dir) if work_dir is not None else os.getcwd()

    def build_documents(self, contents: Sequence[FileContent]) -> list[Document]:
        """Number the records from 1 in the given order and normalize their paths."""
        return [
            Document(
                index=idx,
                source=normalize_output_path(content.path, self.work_dir),
                document_content=content.text,
            )
            for idx, content in enumerate(contents, start=1)
        ]

    def generate(self, contents: Sequence[FileContent]) -> int:
        """Write ``contents`` to the output path.

        The document is first written to a scratch file next to the output. It
        replaces the output only if its size is within the ceiling; otherwise it
        is deleted and the output is left untouched. No scratch file survives
        the call.

        Args:
            contents (Sequence[FileContent]): records, in output order

        Raises:
            OutputSizeExceededError: if the document is larger than the ceiling
            OutputError: if the scratch file cannot be written or renamed

        Returns:
            int: size in bytes of the published document
        """
        documents = self.build_documents(contents)
        serializer = SERIALIZERS[self.output_type]
        parent = self.output_path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
            scratch_file = tempfile.NamedTemporaryFile(  # noqa: SIM115
                "w",
                encoding="utf-8",
                dir=parent,
                prefix=f".{self.output_path.name}.",
                suffix=".tmp",
                delete=False,
            )
        except OSError as e:
            raise OutputError(self.output_path, f"error creating scratch file: {e}") from e

        scratch = Path(scratch_file.name)
        logger.debug("Writing %s through scratch file %s", self.output_path, scratch)
        try:
            with scratch_file:
                serializer(documents, scratch_file)
            size = scratch.stat().st_size
            if size > self.max_output_size:
                raise OutputSizeExceededError(self.output_path, size, self.max_output_size)
            os.replace(scratch, self.output_path)
        except OSError as e:
            raise OutputError(self.output_path, f"error writing output: {e}") from e
        finally:
            scratch.unlink(missing_ok=True)

        logger.info("Wrote %s (%d documents, %d bytes)", self.output_path, len(documents), size)
        return size
