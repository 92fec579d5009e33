"""Parsing of binding expressions and note directives.

Binding expressions live in the visible text of template slides:

    ${Products[0].Name}
    ${Order.Total:C}
    ${Categories>Products[1].Price:N2}
    ${Image(Products[0].Photo)}

Directives live in the speaker notes, one per line:

    #foreach: Products, max: 3, offset: 1
    #range-begin: Categories
    #range-end: Categories
    #alias: Company.Engineering.Staff as Engineers

Neither parser ever raises on bad input. Malformed expressions are left as
literal text and malformed or unknown directives are skipped; both are logged
and, when a diagnostics list is passed in, recorded there.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Union

from .diagnostics import Diagnostic, DiagnosticKind, report

logger = logging.getLogger(__name__)

# A complete expression: "${" up to the first "}" with no nested braces
EXPRESSION_PATTERN = re.compile(r"\$\{([^{}]*)\}")

_SEGMENT_PATTERN = re.compile(r"^\s*([A-Za-z_][\w]*)\s*(?:\[\s*(\d+)\s*\])?\s*$")
_FUNCTION_PATTERN = re.compile(
    r"^\s*(?:(?P<ns>[A-Za-z_]\w*)\.)?(?P<name>[A-Za-z_]\w*)\s*\((?P<args>.*)\)\s*(?::(?P<fmt>.*))?$",
    re.DOTALL,
)
_DIRECTIVE_PATTERN = re.compile(r"#([A-Za-z][\w-]*)\s*:")
_ALIAS_PATTERN = re.compile(r"^(?P<path>.+?)\s+as\s+(?P<name>[A-Za-z_]\w*)\s*$")

# Typographic quotes inserted by slide editors' autocorrect
_SMART_QUOTES = {
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
}

ABSOLUTE_JOIN = "."
CONTEXT_JOIN = ">"


class ExpressionSyntaxError(ValueError):
    """Raised internally when an expression or path cannot be parsed."""
    pass


@dataclass(frozen=True)
class PathSegment:
    """One ``Ident[Index]`` step of a data path.

    Attributes:
        name: Member name.
        index: Explicit element index, or None.
        join: Join operator preceding this segment ("." or ">"); None for the
            first segment.
    """
    name: str
    index: int | None = None
    join: str | None = None

    def __str__(self) -> str:
        text = f"{self.join or ''}{self.name}"
        if self.index is not None:
            text += f"[{self.index}]"
        return text


@dataclass(frozen=True)
class DataPath:
    """A parsed ``Seg (('.'|'>') Seg)*`` path."""
    segments: tuple[PathSegment, ...]

    def __str__(self) -> str:
        return "".join(str(segment) for segment in self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    @classmethod
    def parse(cls, text: str) -> "DataPath":
        """Parse a path string.

        Raises:
            ExpressionSyntaxError: If any segment is malformed or empty.
        """
        if text is None or not text.strip():
            raise ExpressionSyntaxError("Empty data path")

        tokens = re.split(r"([.>])", text.strip())
        segments: list[PathSegment] = []
        join: str | None = None
        for token in tokens:
            if token in (ABSOLUTE_JOIN, CONTEXT_JOIN):
                if join is not None or not segments:
                    raise ExpressionSyntaxError(f"Dangling '{token}' in path '{text}'")
                join = token
                continue
            match = _SEGMENT_PATTERN.match(token)
            if not match:
                raise ExpressionSyntaxError(f"Malformed segment '{token}' in path '{text}'")
            index = int(match.group(2)) if match.group(2) is not None else None
            segments.append(PathSegment(match.group(1), index, join if segments else None))
            join = None

        if join is not None:
            raise ExpressionSyntaxError(f"Path '{text}' ends with '{join}'")
        return cls(tuple(segments))

    @property
    def root(self) -> str:
        """Name of the first segment."""
        return self.segments[0].name

    @property
    def uses_context_operator(self) -> bool:
        return any(segment.join == CONTEXT_JOIN for segment in self.segments)

    def chunks(self) -> list[tuple[PathSegment, ...]]:
        """Split the path at context joins.

        ``Categories>Products[0].Name`` -> ``[(Categories,), (Products[0], .Name)]``
        """
        result: list[list[PathSegment]] = []
        for segment in self.segments:
            if not result or segment.join == CONTEXT_JOIN:
                result.append([])
            result[-1].append(segment)
        return [tuple(chunk) for chunk in result]

    def collection_key(self, position: int) -> str:
        """Canonical collection path of the segment at ``position``.

        Names are joined with their operators. Segments before ``position``
        that carry an explicit index are marked with ``[]`` so a pinned
        element never matches an iterated collection path:

            Company.Staff[0]           position 1 -> "Company.Staff"
            Categories>Products[1]     position 1 -> "Categories>Products"
            Products[0].Items[1]       position 1 -> "Products[].Items"
        """
        parts = []
        for i, segment in enumerate(self.segments[: position + 1]):
            parts.append(f"{segment.join or ''}{segment.name}")
            if segment.index is not None and i < position:
                parts.append("[]")
        return "".join(parts)

    def indexed_references(self) -> list[tuple[str, int]]:
        """All ``(collection path, index)`` pairs in this path."""
        return [
            (self.collection_key(i), segment.index)
            for i, segment in enumerate(self.segments)
            if segment.index is not None
        ]

    def replace_root(self, prefix: "DataPath") -> "DataPath":
        """Substitute the first segment with ``prefix`` (alias expansion).

        An index on the replaced segment moves to the last prefix segment.
        """
        head = self.segments[0]
        new_prefix = list(prefix.segments)
        if head.index is not None:
            new_prefix[-1] = replace(new_prefix[-1], index=head.index)
        return DataPath(tuple(new_prefix) + self.segments[1:])


# Function arguments are string literals or data paths
FunctionArgument = Union[str, DataPath]


@dataclass(frozen=True)
class FunctionCall:
    """An opaque ``[ns.]Name(args)`` call found in an expression."""
    name: str
    args: tuple[FunctionArgument, ...] = ()
    namespace: str | None = None

    def paths(self) -> list[DataPath]:
        return [arg for arg in self.args if isinstance(arg, DataPath)]


@dataclass(frozen=True)
class BindingExpression:
    """A parsed ``${...}`` expression.

    Attributes:
        text: Original expression text including ``${`` and ``}``.
        path: Parsed data path (None for function calls).
        format_spec: Format specifier after ``:``, if any.
        function: Parsed function call, if the expression is one.
        references: ``(collection path, index)`` pairs found in the paths.
    """
    text: str
    path: DataPath | None = None
    format_spec: str | None = None
    function: FunctionCall | None = None
    references: tuple[tuple[str, int], ...] = field(default=())

    @property
    def uses_context_operator(self) -> bool:
        return any(path.uses_context_operator for path in self.paths())

    @property
    def is_function_call(self) -> bool:
        return self.function is not None

    def paths(self) -> list[DataPath]:
        """Every data path the expression reads."""
        if self.function is not None:
            return self.function.paths()
        return [self.path] if self.path is not None else []


class DirectiveType(str, Enum):
    FOREACH = "foreach"
    RANGE = "range"
    ALIAS = "alias"


class RangeBoundary(str, Enum):
    SINGLE = "single"
    BEGIN = "begin"
    END = "end"


@dataclass(frozen=True)
class Directive:
    """A control directive parsed from slide notes.

    Attributes:
        type: Directive kind.
        collection_path: Data path the directive iterates or aliases.
        max_items: Items per slide for foreach (0 when not given).
        offset: Starting element for foreach.
        alias_name: New name introduced by an alias directive.
        range_boundary: BEGIN/END for range markers, SINGLE otherwise.
    """
    type: DirectiveType
    collection_path: str
    max_items: int = 0
    offset: int = 0
    alias_name: str = ""
    range_boundary: RangeBoundary = RangeBoundary.SINGLE


def normalize_quotes(text: str) -> str:
    """Replace typographic quotes with ASCII quotes inside ``${...}`` only."""
    if not text or "${" not in text:
        return text

    def _normalize(match: re.Match) -> str:
        inner = match.group(1)
        for smart, plain in _SMART_QUOTES.items():
            inner = inner.replace(smart, plain)
        return "${" + inner + "}"

    return EXPRESSION_PATTERN.sub(_normalize, text)


def find_expression_spans(text: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of every complete ``${...}`` in text."""
    if not text:
        return []
    return [match.span() for match in EXPRESSION_PATTERN.finditer(text)]


def _split_arguments(args_text: str) -> list[str]:
    """Split a function argument list on commas outside quotes."""
    parts: list[str] = []
    current: list[str] = []
    quote: str | None = None
    for char in args_text:
        if quote:
            current.append(char)
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
            current.append(char)
        elif char == ",":
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    if quote:
        raise ExpressionSyntaxError(f"Unterminated string in arguments '{args_text}'")
    tail = "".join(current).strip()
    if tail or parts:
        parts.append(tail)
    return parts


def _parse_function(match: re.Match) -> tuple[FunctionCall, str | None]:
    args: list[FunctionArgument] = []
    for raw in _split_arguments(match.group("args")):
        if not raw:
            raise ExpressionSyntaxError("Empty function argument")
        if raw[0] in ("'", '"') and raw[-1] == raw[0] and len(raw) >= 2:
            args.append(raw[1:-1])
        else:
            args.append(DataPath.parse(raw))
    fmt = match.group("fmt")
    call = FunctionCall(name=match.group("name"), args=tuple(args), namespace=match.group("ns"))
    return call, fmt.strip() if fmt and fmt.strip() else None


def parse_expression(body: str, text: str | None = None) -> BindingExpression:
    """Parse the inside of a ``${...}`` expression.

    Args:
        body: Text between ``${`` and ``}``.
        text: Original full expression text (defaults to ``${body}``).

    Raises:
        ExpressionSyntaxError: If the body is not a valid path or call.
    """
    original = text if text is not None else "${" + body + "}"

    function_match = _FUNCTION_PATTERN.match(body)
    if function_match:
        call, fmt = _parse_function(function_match)
        references = tuple(ref for path in call.paths() for ref in path.indexed_references())
        return BindingExpression(
            text=original, function=call, format_spec=fmt, references=references
        )

    path_text, sep, fmt = body.partition(":")
    path = DataPath.parse(path_text)
    format_spec = fmt.strip() if sep and fmt.strip() else None
    return BindingExpression(
        text=original,
        path=path,
        format_spec=format_spec,
        references=tuple(path.indexed_references()),
    )


def parse_expressions(
    text: str,
    diagnostics: list[Diagnostic] | None = None,
    slide_id: int | None = None,
) -> list[BindingExpression]:
    """Extract every binding expression from a block of text.

    Malformed expressions are skipped (they stay literal text in the output)
    and reported as PARSE diagnostics.

    Example:
        >>> [str(e.path) for e in parse_expressions("${A[0].Name} and ${B>C}")]
        ['A[0].Name', 'B>C']
    """
    expressions: list[BindingExpression] = []
    if not text or "${" not in text:
        return expressions

    for match in EXPRESSION_PATTERN.finditer(normalize_quotes(text)):
        try:
            expressions.append(parse_expression(match.group(1), match.group(0)))
        except ExpressionSyntaxError as e:
            report(
                diagnostics,
                DiagnosticKind.PARSE,
                f"Treating '{match.group(0)}' as literal text: {e}",
                slide_id,
            )
    return expressions


def _parse_int_option(key: str, value: str, diagnostics, slide_id) -> int | None:
    try:
        number = int(value.strip())
    except ValueError:
        report(diagnostics, DiagnosticKind.PARSE, f"Ignoring non-integer {key} '{value}'", slide_id)
        return None
    if number < 0:
        report(diagnostics, DiagnosticKind.PARSE, f"Ignoring negative {key} {number}", slide_id)
        return None
    return number


def _parse_collection_path(raw: str, keyword: str, diagnostics, slide_id) -> str | None:
    try:
        return str(DataPath.parse(raw))
    except ExpressionSyntaxError as e:
        report(diagnostics, DiagnosticKind.PARSE, f"Skipping #{keyword}: {e}", slide_id)
        return None


def _parse_foreach(body: str, diagnostics, slide_id) -> Directive | None:
    parts = [part.strip() for part in body.split(",")]
    path = _parse_collection_path(parts[0], "foreach", diagnostics, slide_id)
    if path is None:
        return None

    options = {"max": 0, "offset": 0}
    for option in parts[1:]:
        key, sep, value = option.partition(":")
        key = key.strip().lower()
        if not sep or key not in options:
            report(diagnostics, DiagnosticKind.PARSE, f"Unknown #foreach option '{option}'", slide_id)
            continue
        number = _parse_int_option(key, value, diagnostics, slide_id)
        if number is not None:
            options[key] = number

    return Directive(
        type=DirectiveType.FOREACH,
        collection_path=path,
        max_items=options["max"],
        offset=options["offset"],
    )


def _parse_range(body: str, boundary: RangeBoundary, diagnostics, slide_id) -> Directive | None:
    path = _parse_collection_path(body, f"range-{boundary.value}", diagnostics, slide_id)
    if path is None:
        return None
    return Directive(type=DirectiveType.RANGE, collection_path=path, range_boundary=boundary)


def _parse_alias(body: str, diagnostics, slide_id) -> Directive | None:
    match = _ALIAS_PATTERN.match(body.strip())
    if not match:
        report(diagnostics, DiagnosticKind.PARSE, f"Malformed #alias '{body.strip()}'", slide_id)
        return None
    path = _parse_collection_path(match.group("path"), "alias", diagnostics, slide_id)
    if path is None:
        return None
    return Directive(type=DirectiveType.ALIAS, collection_path=path, alias_name=match.group("name"))


def parse_directives(
    notes: str,
    diagnostics: list[Diagnostic] | None = None,
    slide_id: int | None = None,
) -> list[Directive]:
    """Parse control directives from slide notes.

    Each directive runs to the end of its line or to the next ``#keyword:``
    on the same line. Unknown keywords are skipped with a diagnostic.

    Example:
        >>> parse_directives("#foreach: Products, max: 2")[0].max_items
        2
    """
    directives: list[Directive] = []
    if not notes:
        return directives

    for line in normalize_quotes(notes).splitlines():
        matches = list(_DIRECTIVE_PATTERN.finditer(line))
        for i, match in enumerate(matches):
            end = matches[i + 1].start() if i + 1 < len(matches) else len(line)
            keyword = match.group(1).lower()
            body = line[match.end():end].strip()

            if keyword == "foreach":
                directive = _parse_foreach(body, diagnostics, slide_id)
            elif keyword == "range-begin":
                directive = _parse_range(body, RangeBoundary.BEGIN, diagnostics, slide_id)
            elif keyword == "range-end":
                directive = _parse_range(body, RangeBoundary.END, diagnostics, slide_id)
            elif keyword == "alias":
                directive = _parse_alias(body, diagnostics, slide_id)
            else:
                report(diagnostics, DiagnosticKind.PARSE, f"Unknown directive '#{keyword}'", slide_id)
                continue

            if directive is not None:
                logger.debug(f"Parsed directive {directive}")
                directives.append(directive)

    return directives
