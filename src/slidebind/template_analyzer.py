"""Template analysis: classify slides and compute their pagination capacity.

The analyzer works on backend-neutral TemplateSlide records (slide id, the text
of every shape as paragraphs of runs, and the notes text). It never touches
the document format itself, which keeps it usable from tests and from any
Document Backend.

Classification:
    STATIC  - no collection-bound content and no directive; emitted once.
    SOURCE  - has a directive or an indexed/context-relative expression;
              a cloning candidate.
    CLONED  - carries a ``#range-end`` marker; consumed by the planner and
              never emitted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from .diagnostics import Diagnostic
from .expression_parser import (
    BindingExpression,
    Directive,
    DirectiveType,
    RangeBoundary,
    parse_directives,
    parse_expressions,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextShape:
    """Text content of one shape.

    Attributes:
        index: Position of the shape in the slide's shape tree.
        name: Shape name, for logging.
        paragraphs: Run texts of each paragraph, in document order.
    """
    index: int
    name: str = ""
    paragraphs: tuple[tuple[str, ...], ...] = ()

    def paragraph_texts(self) -> list[str]:
        return ["".join(runs) for runs in self.paragraphs]


@dataclass(frozen=True)
class TemplateSlide:
    """Backend-neutral view of one template slide.

    Attributes:
        slide_id: Stable identifier of the slide within the template.
        shapes: Text-bearing shapes.
        notes: Notes text (directives live here).
        handle: Backend object for the slide; opaque to the core.
    """
    slide_id: int
    shapes: tuple[TextShape, ...] = ()
    notes: str = ""
    handle: Any = field(default=None, compare=False, repr=False)

    @classmethod
    def from_texts(cls, slide_id: int, texts: Iterable[str], notes: str = "") -> "TemplateSlide":
        """Build a slide with one single-run shape per text (handy in tests)."""
        shapes = tuple(
            TextShape(index=i, name=f"Text {i}", paragraphs=((text,),))
            for i, text in enumerate(texts)
        )
        return cls(slide_id=slide_id, shapes=shapes, notes=notes)


class SlideType(str, Enum):
    STATIC = "static"
    SOURCE = "source"
    CLONED = "cloned"


@dataclass(frozen=True)
class SlideTemplate:
    """Analysis result for one template slide.

    Attributes:
        slide_id: Identifier of the analyzed slide.
        position: Position of the slide in the template.
        type: Classification.
        directives: Directives found in the notes.
        expressions: Binding expressions found in the visible text.
        collection: Primary collection path (``>``-joined when nested).
        max_array_index: Highest index referencing the primary collection.
        explicit_max: ``max`` from a foreach directive (0 when absent).
        start_offset: ``offset`` from a foreach directive.
    """
    slide_id: int
    position: int
    type: SlideType
    directives: tuple[Directive, ...] = ()
    expressions: tuple[BindingExpression, ...] = ()
    collection: str | None = None
    max_array_index: int = -1
    explicit_max: int = 0
    start_offset: int = 0

    @property
    def items_per_slide(self) -> int:
        """Pagination capacity; never less than one."""
        if self.explicit_max > 0:
            return self.explicit_max
        return max(self.max_array_index + 1, 1)

    @property
    def uses_context_operator(self) -> bool:
        return any(expression.uses_context_operator for expression in self.expressions)

    @property
    def collection_chunks(self) -> list[str]:
        """Primary collection split at context joins."""
        return self.collection.split(">") if self.collection else []

    @property
    def is_nested(self) -> bool:
        return len(self.collection_chunks) > 1

    def directives_of(
        self,
        directive_type: DirectiveType,
        boundary: RangeBoundary | None = None,
    ) -> list[Directive]:
        return [
            d for d in self.directives
            if d.type == directive_type and (boundary is None or d.range_boundary == boundary)
        ]

    @property
    def range_begin(self) -> Directive | None:
        found = self.directives_of(DirectiveType.RANGE, RangeBoundary.BEGIN)
        return found[0] if found else None

    @property
    def range_end(self) -> Directive | None:
        found = self.directives_of(DirectiveType.RANGE, RangeBoundary.END)
        return found[0] if found else None


def _context_prefix(expression: BindingExpression) -> str | None:
    """Collection implied by a context expression: everything before the last chunk.

    ``Categories>Name`` -> ``Categories``; ``A>B>Title`` -> ``A>B``.
    """
    for path in expression.paths():
        if not path.uses_context_operator:
            continue
        last_join = max(
            i for i, segment in enumerate(path.segments) if segment.join == ">"
        )
        return path.collection_key(last_join - 1)
    return None


def _infer_collection(expressions: tuple[BindingExpression, ...]) -> str | None:
    """Pick the primary collection from the expressions on a slide.

    References made through the context operator are the most specific and
    win; then any indexed reference; then the prefix of a context expression.
    """
    context_refs = [
        ref for e in expressions if e.uses_context_operator for ref in e.references
    ]
    for key, _ in context_refs:
        if ">" in key:
            return key
    all_refs = [ref for e in expressions for ref in e.references]
    if all_refs:
        return all_refs[0][0]
    for expression in expressions:
        prefix = _context_prefix(expression)
        if prefix:
            return prefix
    return None


def _classify(directives: tuple[Directive, ...], expressions: tuple[BindingExpression, ...]) -> SlideType:
    boundaries = {d.range_boundary for d in directives if d.type == DirectiveType.RANGE}
    if RangeBoundary.END in boundaries and RangeBoundary.BEGIN not in boundaries:
        return SlideType.CLONED
    if any(d.type == DirectiveType.FOREACH for d in directives) or RangeBoundary.BEGIN in boundaries:
        return SlideType.SOURCE
    if any(e.references or e.uses_context_operator for e in expressions):
        return SlideType.SOURCE
    return SlideType.STATIC


def analyze_slide(
    slide: TemplateSlide,
    position: int,
    diagnostics: list[Diagnostic] | None = None,
) -> SlideTemplate:
    """Analyze a single template slide.

    Expressions are parsed per paragraph over the concatenated runs, so
    expressions split across formatting runs are still found.
    """
    expressions: list[BindingExpression] = []
    for shape in slide.shapes:
        for text in shape.paragraph_texts():
            expressions.extend(parse_expressions(text, diagnostics, slide.slide_id))
    directives = parse_directives(slide.notes, diagnostics, slide.slide_id)
    return build_slide_template(slide.slide_id, position, directives, expressions)


def build_slide_template(
    slide_id: int,
    position: int,
    directives: Iterable[Directive],
    expressions: Iterable[BindingExpression],
) -> SlideTemplate:
    """Classify a slide and compute its collection and capacity.

    Used both for freshly parsed slides and for slides whose expressions
    were rewritten by the alias table.
    """
    directives = tuple(directives)
    expression_tuple = tuple(expressions)

    slide_type = _classify(directives, expression_tuple)

    foreach = [d for d in directives if d.type == DirectiveType.FOREACH]
    range_begin = [
        d for d in directives
        if d.type == DirectiveType.RANGE and d.range_boundary == RangeBoundary.BEGIN
    ]

    collection: str | None
    if foreach:
        collection = foreach[0].collection_path
    else:
        collection = _infer_collection(expression_tuple)
        if collection is None and range_begin:
            collection = range_begin[0].collection_path

    indices = [
        index for e in expression_tuple for key, index in e.references if key == collection
    ]
    max_array_index = max(indices) if indices else -1

    explicit_max = foreach[0].max_items if foreach else 0
    start_offset = foreach[0].offset if foreach else 0
    if explicit_max > 0 and max_array_index >= 0 and explicit_max != max_array_index + 1:
        logger.warning(
            f"Slide {slide_id}: #foreach max {explicit_max} differs from the "
            f"{max_array_index + 1} item(s) referenced on the slide; using {explicit_max}"
        )

    template = SlideTemplate(
        slide_id=slide_id,
        position=position,
        type=slide_type,
        directives=directives,
        expressions=expression_tuple,
        collection=collection if slide_type != SlideType.STATIC else None,
        max_array_index=max_array_index,
        explicit_max=explicit_max,
        start_offset=start_offset,
    )
    logger.debug(
        f"Slide {slide_id}: {slide_type.value}, collection={template.collection!r}, "
        f"{len(expression_tuple)} expression(s), {len(directives)} directive(s), "
        f"items per slide {template.items_per_slide}"
    )
    return template


def analyze_template(
    slides: Iterable[TemplateSlide],
    diagnostics: list[Diagnostic] | None = None,
) -> list[SlideTemplate]:
    """Analyze every template slide, preserving template order."""
    templates = [
        analyze_slide(slide, position, diagnostics)
        for position, slide in enumerate(slides)
    ]
    counts = {t: sum(1 for s in templates if s.type == t) for t in SlideType}
    logger.info(
        f"Analyzed {len(templates)} template slide(s): "
        + ", ".join(f"{count} {t.value}" for t, count in counts.items())
    )
    return templates
