"""Resolution of binding expressions against root data and a slide instance.

A ContextResolver is created per generation run. It resolves each expression
of a planned slide to one of three outcomes:

    str                     the formatted value
    DeferredFunctionResult  a function call the document backend materializes
    HideSignal              the value does not exist (missing member, index
                            out of range); the owning shape should be hidden

Context-relative paths (``Categories>Products[0].Name``) are resolved from the
item selected by the instance's context path. The instance offset shifts
explicit indices on the collection the instance iterates, so
``${Products[1].Name}`` on the third page of a two-per-slide foreach reads
element 5.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Union

from .aliases import AliasTable
from .diagnostics import Diagnostic, DiagnosticKind, report
from .expression_parser import (
    CONTEXT_JOIN,
    EXPRESSION_PATTERN,
    BindingExpression,
    DataPath,
    ExpressionSyntaxError,
    PathSegment,
    normalize_quotes,
    parse_expression,
)
from .slide_plan import ContextPath, SlideInstance, walk_path
from .structured import MISSING, get_index, get_member, to_structured
from .value_formatter import format_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HideSignal:
    """Outcome of an expression whose value does not exist."""
    reason: str


@dataclass(frozen=True)
class DeferredFunctionResult:
    """A function call left for the document backend to materialize.

    Attributes:
        name: Function name (``Image``).
        args: Resolved arguments: string literals and raw data values.
        token: Placeholder text inserted where the call appeared.
        namespace: Optional namespace prefix (``ppt`` in ``ppt.Image``).
        format_spec: Format specifier written after the call, if any.
    """
    name: str
    args: tuple = ()
    token: str = ""
    namespace: str | None = None
    format_spec: str | None = None


Resolution = Union[str, DeferredFunctionResult, HideSignal]


@dataclass
class TextResolution:
    """Result of resolving every expression in a block of text.

    Attributes:
        text: Text with every complete expression replaced.
        hidden: True if any expression produced a HideSignal.
        reasons: Why the text was hidden.
        deferred: Function results whose tokens appear in ``text``.
        spans: ``(start, end)`` of each substituted value in ``text``.
    """
    text: str
    hidden: bool = False
    reasons: list[str] = field(default_factory=list)
    deferred: list[DeferredFunctionResult] = field(default_factory=list)
    spans: list[tuple[int, int]] = field(default_factory=list)


def _chunk_name(chunk: tuple[PathSegment, ...]) -> str:
    return ".".join(segment.name for segment in chunk)


class ContextResolver:
    """Resolve expressions for planned slide instances.

    Args:
        root_data: Root data object.
        aliases: Alias table applied to expressions before resolution.
        normalize_quotes: Replace typographic quotes inside ``${...}`` before
            parsing text.

    Example:
        >>> resolver = ContextResolver({"Items": ["a", "b", "c"]})
        >>> page = SlideInstance(1, 0, offset=1, collection="Items")
        >>> resolver.resolve_text("${Items[1]}", page).text
        'c'
    """

    def __init__(
        self,
        root_data: Any,
        aliases: AliasTable | None = None,
        normalize_quotes: bool = True,
    ):
        self.root = to_structured(root_data)
        self.aliases = aliases if aliases is not None else AliasTable()
        self.normalize_quotes = normalize_quotes
        self.diagnostics: list[Diagnostic] = []
        self._context_cache: dict[str, Any] = {}
        self._deferred_count = 0

    def clear(self):
        """Drop cached context items."""
        self._context_cache.clear()

    # Context items

    def _context_item(self, context: ContextPath, depth: int) -> Any:
        """Item selected by the first ``depth`` context segments (cached)."""
        if depth == 0:
            return self.root
        key = str(context[:depth])
        if key in self._context_cache:
            return self._context_cache[key]

        parent = self._context_item(context, depth - 1)
        segment = context[depth - 1]
        try:
            collection = walk_path(parent, segment.name)
        except ExpressionSyntaxError:
            collection = MISSING
        item = get_index(collection, segment.index)
        self._context_cache[key] = item
        return item

    def _item_index(self, path: DataPath, position: int, instance: SlideInstance) -> int | None:
        """Index selected by a ``>`` join after ``path.segments[position]``."""
        name = path.collection_key(position)
        for segment in instance.context_path:
            if segment.name == name:
                return segment.index
        if name == instance.collection:
            return instance.offset
        return None

    # Paths

    def resolve_path(self, path: DataPath, instance: SlideInstance) -> Any:
        """Resolve a data path to its raw value, or a HideSignal."""
        context = instance.context_path
        chunks = path.chunks()

        depth = 0
        while depth < len(chunks) - 1 and depth < len(context):
            chunk = chunks[depth]
            if chunk[-1].index is not None or _chunk_name(chunk) != context[depth].name:
                break
            depth += 1

        current = self._context_item(context, depth)
        if current is MISSING:
            return HideSignal(f"no element for context {context[:depth]}")

        start = sum(len(chunk) for chunk in chunks[:depth])
        for position in range(start, len(path.segments)):
            segment = path.segments[position]

            if position > start and segment.join == CONTEXT_JOIN:
                previous = path.segments[position - 1]
                if previous.index is None:
                    index = self._item_index(path, position - 1, instance)
                    if index is None:
                        return HideSignal(
                            f"no iteration context for '{path.collection_key(position - 1)}'"
                        )
                    current = get_index(current, index)
                    if current is MISSING:
                        return HideSignal(
                            f"'{path.collection_key(position - 1)}' has no element {index}"
                        )

            if current is None:
                return HideSignal(f"'{path.collection_key(position - 1)}' is empty")
            current = get_member(current, segment.name)
            if current is MISSING:
                return HideSignal(f"no member '{segment.name}' in '{path}'")

            if segment.index is not None:
                index = segment.index
                if path.collection_key(position) == instance.collection:
                    index += instance.offset
                current = get_index(current, index)
                if current is MISSING:
                    return HideSignal(
                        f"index {index} out of range for '{path.collection_key(position)}'"
                    )

        return current

    # Expressions

    def resolve(self, expression: BindingExpression, instance: SlideInstance) -> Resolution:
        """Resolve one expression for one slide instance.

        Failures are isolated: an unexpected error is recorded as a
        RESOLUTION diagnostic and the expression hides.
        """
        expression = self.aliases.rewrite_expression(expression)
        try:
            if expression.function is not None:
                return self._resolve_function(expression, instance)
            value = self.resolve_path(expression.path, instance)
            if isinstance(value, HideSignal):
                logger.debug(
                    f"Hiding {expression.text} on slide {instance.position}: {value.reason}"
                )
                return value
            return format_value(value, expression.format_spec)
        except Exception as e:
            report(
                self.diagnostics,
                DiagnosticKind.RESOLUTION,
                f"Failed to resolve {expression.text}: {e}",
                instance.source_slide_id,
            )
            return HideSignal(f"error: {e}")

    def _resolve_function(
        self, expression: BindingExpression, instance: SlideInstance
    ) -> DeferredFunctionResult | HideSignal:
        call = expression.function
        args = []
        for arg in call.args:
            if isinstance(arg, DataPath):
                value = self.resolve_path(arg, instance)
                if isinstance(value, HideSignal):
                    logger.debug(f"Hiding {expression.text}: {value.reason}")
                    return value
                args.append(value)
            else:
                args.append(arg)

        token = f"[[{call.name}#{self._deferred_count}]]"
        self._deferred_count += 1
        return DeferredFunctionResult(
            name=call.name,
            args=tuple(args),
            token=token,
            namespace=call.namespace,
            format_spec=expression.format_spec,
        )

    def resolve_text(self, text: str, instance: SlideInstance) -> TextResolution:
        """Replace every complete expression in ``text``.

        Malformed expressions stay as literal text. An unclosed ``${`` is
        not an expression and is left untouched.
        """
        if self.normalize_quotes:
            text = normalize_quotes(text)
        result = TextResolution(text=text)
        if not text or "${" not in text:
            return result

        parts: list[str] = []
        length = 0
        last = 0
        for match in EXPRESSION_PATTERN.finditer(text):
            literal = text[last:match.start()]
            parts.append(literal)
            length += len(literal)
            last = match.end()

            try:
                expression = parse_expression(match.group(1), match.group(0))
            except ExpressionSyntaxError as e:
                report(
                    self.diagnostics,
                    DiagnosticKind.PARSE,
                    f"Treating '{match.group(0)}' as literal text: {e}",
                    instance.source_slide_id,
                )
                parts.append(match.group(0))
                length += len(match.group(0))
                continue

            outcome = self.resolve(expression, instance)
            if isinstance(outcome, HideSignal):
                result.hidden = True
                result.reasons.append(outcome.reason)
                value = ""
            elif isinstance(outcome, DeferredFunctionResult):
                result.deferred.append(outcome)
                value = outcome.token
            else:
                value = outcome

            parts.append(value)
            result.spans.append((length, length + len(value)))
            length += len(value)

        parts.append(text[last:])
        result.text = "".join(parts)
        return result
