"""Syntax-aware source cleaners used to shrink files before they are concatenated.

Sources are parsed with tree-sitter, through the grammars bundled by
:mod:`tree_sitter_language_pack`. Each language gets a :class:`LanguageHandler`
registered with :func:`register_language_handler`, which names the node types
holding comments, imports and calls, and recognises trivial accessors. The
cleaner walks the tree once, collects byte ranges to drop and rewrites the
source from the end so earlier offsets stay valid.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, ClassVar, NamedTuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from tree_sitter_language_pack import get_parser

from filefusion.config import Language
from filefusion.exceptions import CleanerError

if TYPE_CHECKING:
    from collections.abc import Callable

    from tree_sitter import Node

DEFAULT_LOGGING_PREFIXES: dict[Language, tuple[str, ...]] = {
    Language.GO: ("log.", "logger."),
    Language.JAVA: ("Logger.", "logger.", "System.out.", "System.err."),
    Language.PYTHON: ("logging.", "logger.", "print(", "print ("),
    Language.JAVASCRIPT: ("console.", "logger."),
    Language.TYPESCRIPT: ("console.", "logger."),
    Language.PHP: ("error_log(", "print_r(", "var_dump("),
    Language.RUBY: ("puts ", "print ", "p ", "logger."),
    Language.CSHARP: ("Console.", "Debug.", "Logger."),
    Language.SWIFT: ("print(", "debugPrint(", "NSLog("),
    Language.KOTLIN: ("println(", "print(", "Logger."),
    Language.CPP: ("std::cout", "std::cerr", "std::clog", "printf(", "fprintf("),
    Language.BASH: ("logger ",),
}


class CleanerOptions(BaseModel):
    """What a cleaner strips from its input."""

    model_config = ConfigDict(frozen=True)

    remove_comments: bool = Field(default=True, description="Remove comments.")
    preserve_doc_comments: bool = Field(
        default=True,
        description="Keep documentation comments and docstrings.",
    )
    remove_imports: bool = Field(default=False, description="Remove import statements.")
    remove_logging: bool = Field(default=True, description="Remove logging statements.")
    remove_getters_setters: bool = Field(
        default=True,
        description="Remove single-statement getter/setter methods.",
    )
    optimize_whitespace: bool = Field(
        default=True,
        description="Trim trailing whitespace and collapse blank runs.",
    )
    remove_empty_lines: bool = Field(default=True, description="Remove blank lines.")
    logging_prefixes: dict[Language, tuple[str, ...]] = Field(
        default_factory=lambda: dict(DEFAULT_LOGGING_PREFIXES),
        description="Call prefixes that identify a logging statement, per language.",
    )


_ACCESSOR_NAME_RE = re.compile(r"^(?:[Gg]et|[Ss]et|[Ii]s)(?:[A-Z_]|$)")
_NAME_TYPES = frozenset({"identifier", "simple_identifier", "field_identifier", "property_identifier", "name"})
_BODY_TYPES = frozenset({"block", "function_body", "compound_statement", "statement_block"})
# Containers flattened when counting the statements of a body.
_WRAPPER_TYPES = frozenset(
    {"block", "statement_list", "statements", "function_body", "body_statement", "compound_statement"},
)


def _text(node: Node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8")


class LanguageHandler:
    """Node types and predicates the cleaner needs for one grammar.

    Subclasses override the class attributes; the predicates cover what a node
    type alone cannot tell.
    """

    grammar: ClassVar[str]
    comment_types: ClassVar[frozenset[str]] = frozenset({"comment"})
    import_types: ClassVar[frozenset[str]] = frozenset()
    call_types: ClassVar[frozenset[str]] = frozenset()
    function_types: ClassVar[frozenset[str]] = frozenset()
    doc_prefixes: ClassVar[tuple[str, ...]] = ()
    fills_empty_blocks: ClassVar[bool] = False

    def is_doc_comment(self, node: Node, source: bytes) -> bool:
        return bool(self.doc_prefixes) and _text(node, source).startswith(self.doc_prefixes)

    def is_import(self, node: Node, source: bytes) -> bool:  # noqa: ARG002
        return node.type in self.import_types

    def is_docstring(self, node: Node) -> bool:  # noqa: ARG002
        return False

    def function_name(self, node: Node, source: bytes) -> str | None:
        name = node.child_by_field_name("name")
        if name is None:
            name = next((c for c in node.named_children if c.type in _NAME_TYPES), None)
        return None if name is None else _text(name, source)

    def function_body(self, node: Node) -> Node | None:
        body = node.child_by_field_name("body")
        if body is not None:
            return body
        return next((c for c in node.named_children if c.type in _BODY_TYPES), None)

    def statements(self, body: Node) -> list[Node]:
        """Statements of ``body``, comments skipped and wrappers flattened."""
        found: list[Node] = []
        for child in body.named_children:
            if child.type in self.comment_types:
                continue
            if child.type in _WRAPPER_TYPES:
                found.extend(self.statements(child))
            else:
                found.append(child)
        return found

    def is_getter_setter(self, node: Node, source: bytes) -> bool:
        if node.type not in self.function_types:
            return False
        name = self.function_name(node, source)
        if name is None or not _ACCESSOR_NAME_RE.match(name):
            return False
        body = self.function_body(node)
        return body is not None and len(self.statements(body)) <= 1


_H = TypeVar("_H", bound=type[LanguageHandler])

_HANDLERS: dict[Language, LanguageHandler] = {}


def register_language_handler(languages: Language | list[Language]) -> Callable[[_H], _H]:
    """Decorator to register a handler class for one or more languages.

    Args:
        languages (Language | list[Language]): the language(s) the decorated
            class handles

    Returns:
        Callable[[_H], _H]: a decorator that records an instance of the class in
        the handler registry and returns the class unchanged.
    """

    def decorator(cls: _H) -> _H:
        handler = cls()
        if isinstance(languages, list):
            for lang in languages:
                _HANDLERS[lang] = handler
        else:
            _HANDLERS[languages] = handler
        return cls

    return decorator


def supported_languages() -> list[Language]:
    """Languages with a registered handler."""
    return sorted(_HANDLERS, key=str)


@register_language_handler(Language.GO)
class GoHandler(LanguageHandler):
    grammar = "go"
    import_types = frozenset({"import_declaration"})
    call_types = frozenset({"call_expression"})
    function_types = frozenset({"function_declaration", "method_declaration"})
    doc_prefixes = ("///",)


@register_language_handler(Language.JAVA)
class JavaHandler(LanguageHandler):
    grammar = "java"
    comment_types = frozenset({"line_comment", "block_comment"})
    import_types = frozenset({"import_declaration"})
    call_types = frozenset({"method_invocation"})
    function_types = frozenset({"method_declaration"})
    doc_prefixes = ("/**",)


@register_language_handler(Language.JAVASCRIPT)
class JavaScriptHandler(LanguageHandler):
    grammar = "javascript"
    import_types = frozenset({"import_statement"})
    call_types = frozenset({"call_expression"})
    function_types = frozenset({"method_definition", "function_declaration"})
    doc_prefixes = ("/**",)


@register_language_handler(Language.TYPESCRIPT)
class TypeScriptHandler(JavaScriptHandler):
    grammar = "typescript"


@register_language_handler(Language.CPP)
class CppHandler(LanguageHandler):
    grammar = "cpp"
    import_types = frozenset({"preproc_include", "using_declaration"})
    call_types = frozenset({"call_expression", "binary_expression"})
    function_types = frozenset({"function_definition"})
    doc_prefixes = ("///", "/**")

    def function_name(self, node: Node, source: bytes) -> str | None:
        declarator = node.child_by_field_name("declarator")
        while declarator is not None and declarator.type != "function_declarator":
            declarator = declarator.child_by_field_name("declarator")
        if declarator is None:
            return None
        name = declarator.child_by_field_name("declarator")
        return None if name is None else _text(name, source).rsplit("::", 1)[-1]


@register_language_handler(Language.CSHARP)
class CSharpHandler(LanguageHandler):
    grammar = "csharp"
    import_types = frozenset({"using_directive"})
    call_types = frozenset({"invocation_expression"})
    function_types = frozenset({"method_declaration"})
    doc_prefixes = ("///",)


@register_language_handler(Language.PHP)
class PhpHandler(LanguageHandler):
    grammar = "php"
    import_types = frozenset(
        {
            "namespace_use_declaration",
            "require_expression",
            "require_once_expression",
            "include_expression",
            "include_once_expression",
        },
    )
    call_types = frozenset({"function_call_expression"})
    function_types = frozenset({"method_declaration"})
    doc_prefixes = ("/**",)


@register_language_handler(Language.RUBY)
class RubyHandler(LanguageHandler):
    grammar = "ruby"
    call_types = frozenset({"call"})
    function_types = frozenset({"method"})

    def is_import(self, node: Node, source: bytes) -> bool:
        if node.type != "call" or node.child_by_field_name("receiver") is not None:
            return False
        method = node.child_by_field_name("method")
        return method is not None and _text(method, source) in {"require", "require_relative", "load"}


@register_language_handler(Language.BASH)
class BashHandler(LanguageHandler):
    grammar = "bash"
    call_types = frozenset({"command"})

    def is_import(self, node: Node, source: bytes) -> bool:
        if node.type != "command":
            return False
        name = node.child_by_field_name("name")
        return name is not None and _text(name, source) in {"source", "."}


@register_language_handler(Language.SWIFT)
class SwiftHandler(LanguageHandler):
    grammar = "swift"
    comment_types = frozenset({"comment", "multiline_comment"})
    import_types = frozenset({"import_declaration"})
    call_types = frozenset({"call_expression"})
    function_types = frozenset({"function_declaration"})
    doc_prefixes = ("///", "/**")


@register_language_handler(Language.KOTLIN)
class KotlinHandler(LanguageHandler):
    grammar = "kotlin"
    comment_types = frozenset({"comment", "line_comment", "multiline_comment"})
    import_types = frozenset({"import_header"})
    call_types = frozenset({"call_expression"})
    function_types = frozenset({"function_declaration", "getter", "setter"})
    doc_prefixes = ("/**",)

    def is_getter_setter(self, node: Node, source: bytes) -> bool:
        # Property accessors have no name of their own.
        if node.type in {"getter", "setter"}:
            body = self.function_body(node)
            return body is not None and len(self.statements(body)) <= 1
        return super().is_getter_setter(node, source)


@register_language_handler(Language.SQL)
class SqlHandler(LanguageHandler):
    grammar = "sql"
    comment_types = frozenset({"comment", "marginalia"})


@register_language_handler(Language.HTML)
class HtmlHandler(LanguageHandler):
    grammar = "html"


@register_language_handler(Language.CSS)
class CssHandler(LanguageHandler):
    grammar = "css"
    import_types = frozenset({"import_statement"})
    doc_prefixes = ("/**",)


_PY_ACCESSOR_NAME_RE = re.compile(r"^(get|set|is)_\w+$")
_PY_SCOPES = frozenset({"function_definition", "class_definition"})


@register_language_handler(Language.PYTHON)
class PythonHandler(LanguageHandler):
    """Python: docstrings are statements, and an emptied block gets ``pass``."""

    grammar = "python"
    import_types = frozenset({"import_statement", "import_from_statement", "future_import_statement"})
    call_types = frozenset({"call"})
    fills_empty_blocks = True

    def is_docstring(self, node: Node) -> bool:
        if node.type != "expression_statement" or node.named_child_count != 1:
            return False
        if node.named_children[0].type not in {"string", "concatenated_string"}:
            return False
        parent = node.parent
        if parent is None:
            return False
        scope = parent.parent
        if parent.type != "module" and not (parent.type == "block" and scope is not None and scope.type in _PY_SCOPES):
            return False
        first = next((c for c in parent.named_children if c.type not in self.comment_types), None)
        return first is not None and first.start_byte == node.start_byte

    def statements(self, body: Node) -> list[Node]:
        return [c for c in body.named_children if c.type not in self.comment_types]

    def is_getter_setter(self, node: Node, source: bytes) -> bool:
        if node.type == "decorated_definition":
            definition = node.child_by_field_name("definition")
            decorators = [_text(c, source).lstrip("@").strip() for c in node.named_children if c.type == "decorator"]
        elif node.type == "function_definition" and (node.parent is None or node.parent.type != "decorated_definition"):
            definition, decorators = node, []
        else:
            return False
        if definition is None or definition.type != "function_definition" or not _in_python_class(node):
            return False

        body = definition.child_by_field_name("body")
        statements = [] if body is None else self.statements(body)
        if statements and self.is_docstring(statements[0]):
            statements = statements[1:]
        if len(statements) > 1:
            return False
        name = self.function_name(definition, source) or ""
        if _PY_ACCESSOR_NAME_RE.match(name):
            return True
        return any(d == "property" or d.endswith((".setter", ".getter")) for d in decorators)


def _in_python_class(node: Node) -> bool:
    parent = node.parent
    if parent is None or parent.type != "block":
        return False
    return parent.parent is not None and parent.parent.type == "class_definition"


class _Edit(NamedTuple):
    start: int
    end: int
    replacement: bytes


def _owned_lines(source: bytes, start: int, end: int) -> tuple[int, int] | None:
    """The full lines of ``start:end`` if nothing but blanks (or ``;``) shares them."""
    line_start = source.rfind(b"\n", 0, start) + 1
    newline = source.find(b"\n", end)
    line_end = len(source) if newline < 0 else newline + 1
    if source[line_start:start].strip() or source[end:line_end].strip(b" \t\r\n;"):
        return None
    return line_start, line_end


def _statement(node: Node) -> Node:
    parent = node.parent
    if parent is not None and parent.type == "expression_statement":
        return parent
    return node


class Cleaner:
    """Strip comments, imports, logging and trivial accessors from one language."""

    def __init__(self, language: Language | str, options: CleanerOptions | None = None) -> None:
        try:
            self.language = Language(language)
        except ValueError:
            raise CleanerError(str(language), "unsupported language") from None
        if self.language not in _HANDLERS:
            raise CleanerError(str(language), "unsupported language")
        self.options = options or CleanerOptions()
        self.handler = _HANDLERS[self.language]

    def clean(self, content: bytes) -> bytes:
        """Return the cleaned version of ``content``.

        A parser is created per call, so one cleaner may serve several threads.

        Args:
            content (bytes): UTF-8 encoded source

        Raises:
            CleanerError: on empty input, undecodable bytes or unparsable source

        Returns:
            bytes: the cleaned source, UTF-8 encoded
        """
        if not content:
            raise CleanerError(self.language, "empty input")
        try:
            content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CleanerError(self.language, f"input is not valid UTF-8: {e}") from e

        try:
            parser = get_parser(self.handler.grammar)  # type: ignore[arg-type]
        except LookupError as e:
            raise CleanerError(self.language, f"grammar not available: {e}") from e
        root = parser.parse(content).root_node
        if root.has_error:
            raise CleanerError(self.language, "parsing error: invalid syntax")

        cleaned = _apply(content, self._collect_edits(root, content)).decode("utf-8")
        if self.options.optimize_whitespace:
            cleaned = optimize_whitespace(cleaned)
        if self.options.remove_empty_lines:
            cleaned = remove_empty_lines(cleaned)
        return cleaned.encode("utf-8")

    def _collect_edits(self, root: Node, source: bytes) -> list[_Edit]:
        edits: dict[tuple[int, int], _Edit] = {}
        removed: dict[tuple[int, int], list[Node]] = {}

        def drop(target: Node) -> bool:
            span = _owned_lines(source, target.start_byte, self._statement_end(target))
            if span is None:
                return False
            edits[(target.start_byte, target.end_byte)] = _Edit(*span, b"")
            parent = target.parent
            if parent is not None and parent.type == "block":
                removed.setdefault((parent.start_byte, parent.end_byte), []).append(target)
            return True

        stack = [root]
        while stack:
            node = stack.pop()
            if self._visit(node, source, edits, drop):
                continue
            stack.extend(reversed(node.children))

        if self.handler.fills_empty_blocks:
            self._fill_empty_blocks(root, removed, edits)
        return list(edits.values())

    def _visit(
        self,
        node: Node,
        source: bytes,
        edits: dict[tuple[int, int], _Edit],
        drop: Callable[[Node], bool],
    ) -> bool:
        """Record the edit for ``node``; True when its subtree needs no further walk."""
        handler = self.handler
        options = self.options
        if node.type in handler.comment_types:
            if options.remove_comments and not self._keeps_comment(node, source):
                span = _owned_lines(source, node.start_byte, node.end_byte)
                start, end = span or (node.start_byte, node.end_byte)
                edits[(node.start_byte, node.end_byte)] = _Edit(start, end, b"")
            return True

        if handler.is_docstring(node):
            if options.remove_comments and not options.preserve_doc_comments:
                self._drop_docstring(node, edits, drop)
            return True

        if options.remove_imports and handler.is_import(node, source):
            return drop(_statement(node))

        prefixes = options.logging_prefixes.get(self.language, ())
        if options.remove_logging and prefixes and node.type in handler.call_types:
            target = _statement(node)
            parent = target.parent
            in_arguments = parent is not None and parent.type.endswith(("argument", "arguments", "argument_list"))
            if not in_arguments and _text(node, source).startswith(prefixes) and drop(target):
                return True

        return options.remove_getters_setters and handler.is_getter_setter(node, source) and drop(node)

    def _statement_end(self, target: Node) -> int:
        # A comment trailing the statement on its last line goes with it.
        following = target.next_sibling
        if (
            following is not None
            and following.type in self.handler.comment_types
            and following.start_point[0] == target.end_point[0]
        ):
            return following.end_byte
        return target.end_byte

    def _keeps_comment(self, node: Node, source: bytes) -> bool:
        if node.start_byte == 0 and source.startswith(b"#!"):
            return True
        return self.options.preserve_doc_comments and self.handler.is_doc_comment(node, source)

    def _drop_docstring(
        self,
        node: Node,
        edits: dict[tuple[int, int], _Edit],
        drop: Callable[[Node], bool],
    ) -> None:
        parent = node.parent
        sole = (
            parent is not None
            and parent.type == "block"
            and len(self.handler.statements(parent)) == 1
        )
        if sole:
            string = node.named_children[0]
            edits[(string.start_byte, string.end_byte)] = _Edit(string.start_byte, string.end_byte, b"...")
        else:
            drop(node)

    def _fill_empty_blocks(
        self,
        root: Node,
        removed: dict[tuple[int, int], list[Node]],
        edits: dict[tuple[int, int], _Edit],
    ) -> None:
        stack = [root]
        while stack:
            node = stack.pop()
            stack.extend(node.named_children)
            dropped = removed.get((node.start_byte, node.end_byte))
            if node.type != "block" or not dropped:
                continue
            if len(dropped) == len(self.handler.statements(node)):
                first = min(dropped, key=lambda n: n.start_byte)
                edits[(first.start_byte, first.end_byte)] = _Edit(first.start_byte, first.end_byte, b"pass")


def _apply(source: bytes, edits: list[_Edit]) -> bytes:
    """Apply ``edits``; an edit starting inside an earlier one is dropped."""
    kept: list[_Edit] = []
    for edit in sorted(edits, key=lambda e: (e.start, -e.end)):
        if kept and edit.start < kept[-1].end:
            continue
        kept.append(edit)
    out = source
    for edit in reversed(kept):
        out = out[: edit.start] + edit.replacement + out[edit.end :]
    return out


def optimize_whitespace(source: str) -> str:
    """Trim trailing whitespace and collapse runs of blank lines into one."""
    out: list[str] = []
    previous_blank = False
    for line in source.splitlines():
        line = line.rstrip()  # noqa: PLW2901
        if not line:
            if previous_blank:
                continue
            previous_blank = True
        else:
            previous_blank = False
        out.append(line)
    text = "\n".join(out).strip("\n")
    return text + "\n" if text else ""


def remove_empty_lines(source: str) -> str:
    """Drop every whitespace-only line."""
    lines = [line for line in source.splitlines() if line.strip()]
    return "\n".join(lines) + "\n" if lines else ""
