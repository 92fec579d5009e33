"""Slide plan generation.

Turns analyzed template slides plus root data into an ordered list of
SlideInstance records. Each instance says which template slide to clone, the
iteration context it is bound to and the pagination offset its indexed
expressions are shifted by.

Expansion rules, in template order:
    - STATIC slides outside a window are emitted once.
    - Flat SOURCE slides are paginated: ``ceil(max(len - offset, 0) / S)``
      instances with offsets ``offset + page * S``.
    - Windows (explicit ``#range-begin``/``#range-end`` pairs, or a parent
      slide plus the context-relative slides that follow it) repeat as a unit
      for every element of the window collection. Nested slides inside a
      window expand their child collection from the current element.
    - A context-relative slide whose own ``#foreach`` forms its window visits
      elements ``offset, offset + S, ...``; nested slides honour ``offset`` too.
    - CLONED slides (range-end markers) are never emitted.

Example:
    slides = analyze_template([TemplateSlide.from_texts(1, ["${Items[0]}"])])
    plan = generate_plan(slides, {"Items": ["a", "b", "c"]})
    [i.offset for i in plan]  # [0, 1, 2]
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Iterator

from .aliases import AliasTable
from .diagnostics import Diagnostic, DiagnosticKind, report
from .expression_parser import (
    DataPath,
    Directive,
    DirectiveType,
    ExpressionSyntaxError,
    RangeBoundary,
)
from .progress import ProcessingPhase, ProgressReporter
from .structured import MISSING, get_index, get_member, is_sequence, to_structured
from .template_analyzer import SlideTemplate, SlideType, build_slide_template

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContextSegment:
    """One ``(collection, index)`` step of an iteration context."""
    name: str
    index: int

    def __str__(self) -> str:
        return f"{self.name}[{self.index}]"


@dataclass(frozen=True)
class ContextPath:
    """Ordered iteration context, outermost collection first.

    ``str()`` renders ``Categories[1]>Products[0]``; it is used as a cache key
    and for display only.
    """
    segments: tuple[ContextSegment, ...] = ()

    def __str__(self) -> str:
        return ">".join(str(segment) for segment in self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self) -> Iterator[ContextSegment]:
        return iter(self.segments)

    def __getitem__(self, item):
        if isinstance(item, slice):
            return ContextPath(self.segments[item])
        return self.segments[item]

    def extend(self, name: str, index: int) -> "ContextPath":
        return ContextPath(self.segments + (ContextSegment(name, index),))


@dataclass(frozen=True)
class SlideInstance:
    """One concrete output slide.

    Attributes:
        source_slide_id: Template slide to clone.
        position: Output position (contiguous from 0).
        context_path: Iteration context the slide is bound to.
        offset: Shift applied to indices on ``collection``.
        parent_index: Index of the enclosing element for nested slides.
        is_empty: True for the placeholder emitted for an empty child collection.
        collection: Collection path the offset applies to.
    """
    source_slide_id: int
    position: int
    context_path: ContextPath = field(default_factory=ContextPath)
    offset: int = 0
    parent_index: int | None = None
    is_empty: bool = False
    collection: str | None = None

    def describe(self) -> str:
        """Short form: ``<slide>@<context>#<offset>``."""
        text = f"{self.source_slide_id}"
        if self.context_path:
            text += f"@{self.context_path}"
        text += f"#{self.offset}"
        if self.is_empty:
            text += " (empty)"
        return text


@dataclass
class SlidePlan:
    """Ordered slide instances plus everything needed to resolve them."""
    instances: list[SlideInstance] = field(default_factory=list)
    aliases: AliasTable = field(default_factory=AliasTable)
    context_chains: dict[int, list[str]] = field(default_factory=dict)
    slide_templates: dict[int, SlideTemplate] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    nested: bool = False

    def __len__(self) -> int:
        return len(self.instances)

    def __iter__(self) -> Iterator[SlideInstance]:
        return iter(self.instances)

    def append(self, **kwargs) -> SlideInstance:
        """Append an instance at the next position."""
        position = self.instances[-1].position + 1 if self.instances else 0
        instance = SlideInstance(position=position, **kwargs)
        self.instances.append(instance)
        return instance

    def instances_for(self, slide_id: int) -> list[SlideInstance]:
        return [i for i in self.instances if i.source_slide_id == slide_id]

    def describe(self) -> list[str]:
        return [f"{i.position}: {i.describe()}" for i in self.instances]


@dataclass
class _Window:
    """Consecutive template positions repeated per element of ``collection``."""
    start: int
    end: int
    collection: str
    explicit: bool
    # Element indices visited: range(first, len, step)
    first: int = 0
    step: int = 1


def walk_path(value: Any, path_text: str) -> Any:
    """Follow an absolute path (members and explicit indices) from ``value``.

    Raises:
        ExpressionSyntaxError: If the path is malformed or uses ``>``.
    """
    path = DataPath.parse(path_text)
    if path.uses_context_operator:
        raise ExpressionSyntaxError(f"Context operator not allowed in '{path_text}'")
    current = value
    for segment in path.segments:
        if current is None or current is MISSING:
            return MISSING
        current = get_member(current, segment.name)
        if segment.index is not None:
            current = get_index(current, segment.index)
    return current


class _Planner:
    """Single-use helper holding the state of one plan generation."""

    def __init__(self, templates: list[SlideTemplate], root_data: Any, plan: SlidePlan):
        self.templates = templates
        self.root = root_data
        self.plan = plan

    def _diagnose(self, message: str, slide_id: int | None = None):
        report(self.plan.diagnostics, DiagnosticKind.PLANNING, message, slide_id)

    def _sequence(self, value: Any, path_text: str, slide_id: int) -> list:
        """Resolve ``path_text`` against ``value``; unresolvable paths are empty."""
        try:
            found = walk_path(value, path_text)
        except ExpressionSyntaxError as e:
            self._diagnose(f"Cannot resolve collection '{path_text}': {e}", slide_id)
            return []
        if found is MISSING or found is None:
            self._diagnose(f"Collection '{path_text}' not found; treating as empty", slide_id)
            return []
        if not is_sequence(found):
            self._diagnose(f"'{path_text}' is not a collection; treating as empty", slide_id)
            return []
        return list(found)

    # Windows

    def find_windows(self) -> list[_Window]:
        windows: list[_Window] = []
        owner: dict[int, _Window] = {}

        for template in self.templates:
            begin = template.range_begin
            if begin is None or template.position in owner:
                continue
            end = self._find_range_end(template.position, begin)
            window = _Window(template.position, end, begin.collection_path, explicit=True)
            windows.append(window)
            for position in range(window.start, window.end + 1):
                owner[position] = window
            logger.debug(
                f"Range window over '{window.collection}': positions {window.start}-{window.end}"
            )

        for template in self.templates:
            if template.position in owner or template.type != SlideType.SOURCE:
                continue
            if not (template.uses_context_operator or template.is_nested):
                continue
            outer = template.collection_chunks[0]
            window = self._attach_to_parent(template, outer, owner)
            if window is None:
                window = _Window(template.position, template.position, outer, explicit=False)
                if template.directives_of(DirectiveType.FOREACH) and not template.is_nested:
                    # The slide's own #foreach pages the collection
                    window.first = template.start_offset
                    window.step = template.items_per_slide
                logger.debug(
                    f"Slide {template.slide_id} has no parent slide for '{outer}'; "
                    "iterating it on its own"
                )
            if all(known is not window for known in windows):
                windows.append(window)
            for position in range(window.start, window.end + 1):
                owner[position] = window

        return sorted(windows, key=lambda w: w.start)

    def _find_range_end(self, start: int, begin: Directive) -> int:
        if self.templates[start].range_end is not None:
            return start
        for template in self.templates[start + 1:]:
            for directive in template.directives_of(DirectiveType.RANGE, RangeBoundary.END):
                if directive.collection_path == begin.collection_path:
                    return template.position
        self._diagnose(
            f"#range-begin: {begin.collection_path} has no matching #range-end; "
            "the range runs to the last slide",
            self.templates[start].slide_id,
        )
        return len(self.templates) - 1

    def _attach_to_parent(
        self, child: SlideTemplate, outer: str, owner: dict[int, _Window]
    ) -> _Window | None:
        """Find (or extend) the implicit window a context slide belongs to."""
        for position in range(child.position - 1, -1, -1):
            window = owner.get(position)
            if window is not None:
                if not window.explicit and window.collection == outer:
                    window.end = child.position
                    return window
                return None
            candidate = self.templates[position]
            if (
                candidate.type == SlideType.SOURCE
                and candidate.collection == outer
                and not candidate.uses_context_operator
            ):
                window = _Window(position, child.position, outer, explicit=False)
                logger.debug(
                    f"Slide {candidate.slide_id} is the parent of slide {child.slide_id} "
                    f"over '{outer}'"
                )
                owner[position] = window
                return window
        return None

    # Expansion

    def expand(self, windows: list[_Window]):
        starts = {window.start: window for window in windows}
        position = 0
        while position < len(self.templates):
            window = starts.get(position)
            if window is not None:
                self._expand_window(window)
                position = window.end + 1
                continue

            template = self.templates[position]
            if template.type == SlideType.STATIC:
                self.plan.append(source_slide_id=template.slide_id)
            elif template.type == SlideType.SOURCE:
                self._expand_flat(template, self.root, ContextPath())
            position += 1

    def _expand_flat(self, template: SlideTemplate, data: Any, context: ContextPath):
        items = self._sequence(data, template.collection, template.slide_id)
        size = template.items_per_slide
        start = template.start_offset
        pages = math.ceil(max(len(items) - start, 0) / size)
        for page in range(pages):
            self.plan.append(
                source_slide_id=template.slide_id,
                context_path=context,
                offset=start + page * size,
                collection=template.collection,
            )

    def _expand_window(self, window: _Window):
        elements = self._sequence(self.root, window.collection, self.templates[window.start].slide_id)
        members = [
            t for t in self.templates[window.start:window.end + 1] if t.type != SlideType.CLONED
        ]
        logger.debug(
            f"Expanding window over '{window.collection}' ({len(elements)} element(s), "
            f"{len(members)} slide(s))"
        )
        for index in range(window.first, len(elements), window.step):
            element = elements[index]
            context = ContextPath((ContextSegment(window.collection, index),))
            for template in members:
                chunks = template.collection_chunks
                if template.type == SlideType.STATIC or not chunks or (
                    len(chunks) == 1 and chunks[0] == window.collection
                ):
                    self.plan.append(
                        source_slide_id=template.slide_id,
                        context_path=context,
                        offset=index,
                        collection=window.collection,
                    )
                elif chunks[0] == window.collection:
                    self._expand_nested(template, chunks[1:], element, context)
                else:
                    self._expand_flat(template, self.root, context)

    def _expand_nested(
        self, template: SlideTemplate, chunks: list[str], element: Any, context: ContextPath
    ):
        """Expand the remaining ``chunks`` of a nested collection below ``element``."""
        items = self._sequence(element, chunks[0], template.slide_id)
        if len(chunks) > 1:
            for index, item in enumerate(items):
                self._expand_nested(template, chunks[1:], item, context.extend(chunks[0], index))
            return

        parent_index = context[-1].index
        start = template.start_offset
        if len(items) <= start:
            self.plan.append(
                source_slide_id=template.slide_id,
                context_path=context,
                parent_index=parent_index,
                is_empty=True,
                collection=template.collection,
            )
            return

        size = template.items_per_slide
        for page in range(math.ceil((len(items) - start) / size)):
            self.plan.append(
                source_slide_id=template.slide_id,
                context_path=context,
                offset=start + page * size,
                parent_index=parent_index,
                collection=template.collection,
            )


def _apply_aliases(templates: list[SlideTemplate], aliases: AliasTable) -> list[SlideTemplate]:
    if not len(aliases):
        return list(templates)
    rewritten = []
    for template in templates:
        expressions = [aliases.rewrite_expression(e) for e in template.expressions]
        directives = [aliases.rewrite_directive(d) for d in template.directives]
        rewritten.append(
            build_slide_template(template.slide_id, template.position, directives, expressions)
        )
    return rewritten


def generate_plan(
    slide_templates: list[SlideTemplate],
    root_data: Any,
    progress: ProgressReporter | None = None,
) -> SlidePlan:
    """Generate the ordered slide plan for a template and its data.

    Args:
        slide_templates: Analyzed slides in template order.
        root_data: Root data object (mappings, sequences and scalars;
            dataclasses are converted).
        progress: Optional reporter; the alias pass and the expansion are
            reported as separate phases.

    Returns:
        SlidePlan with contiguous positions. Unresolvable collections are
        planned as empty and reported in ``plan.diagnostics``.
    """
    plan = SlidePlan()
    templates = sorted(slide_templates, key=lambda t: t.position)
    # Positions are renumbered so windows can index the list directly
    templates = [replace(t, position=i) for i, t in enumerate(templates)]

    alias_directives = [
        d for t in templates for d in t.directives if d.type == DirectiveType.ALIAS
    ]
    if progress is not None:
        progress.report(
            ProcessingPhase.ALIAS_TRANSFORMATION, 15, f"{len(alias_directives)} alias directive(s)"
        )
    plan.aliases = AliasTable.from_directives(alias_directives, plan.diagnostics)
    templates = _apply_aliases(templates, plan.aliases)
    if progress is not None:
        progress.report(ProcessingPhase.PLAN_GENERATION, 25)

    plan.slide_templates = {t.slide_id: t for t in templates}
    plan.context_chains = {
        t.slide_id: t.collection_chunks for t in templates if t.collection
    }

    planner = _Planner(templates, to_structured(root_data), plan)
    windows = planner.find_windows()
    plan.nested = bool(windows)
    planner.expand(windows)

    logger.info(
        f"Planned {len(plan)} slide(s) from {len(templates)} template slide(s)"
        + (f", {len(windows)} window(s)" if windows else "")
    )
    return plan
