"""Presentation generation orchestration.

This module ties the pipeline together:

    1. Analyze the template slides (expressions, directives, capacity)
    2. Build the alias table and the slide plan
    3. Resolve every expression of every planned slide (data binding)
    4. Apply the result through a document backend: clone, patch run text,
       materialize function results, hide shapes, drop template slides, save

``generate()`` runs steps 1-3 without any document I/O and returns one
SlideOutput per planned slide. PresentationGenerator runs all four steps
against a python-pptx backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .backend import DocumentBackend, PptxBackend
from .config import Config, load_data_file
from .context_resolver import ContextResolver, DeferredFunctionResult
from .diagnostics import Diagnostic
from .progress import ProcessingPhase, ProgressCallback, ProgressReporter
from .run_reconciler import reconcile_runs
from .slide_plan import SlideInstance, SlidePlan, generate_plan
from .template_analyzer import SlideTemplate, TemplateSlide, analyze_template

logger = logging.getLogger(__name__)


@dataclass
class SlideOutput:
    """Everything needed to produce one output slide.

    Attributes:
        source: Template slide to clone.
        instance: Planned instance the slide was resolved for.
        text_patches: New run texts keyed by ``(shape, paragraph, run)``.
        hidden_shapes: Indices of shapes to hide.
        deferred: ``(shape index, function result)`` pairs to materialize.
    """
    source: TemplateSlide
    instance: SlideInstance
    text_patches: dict[tuple[int, int, int], str] = field(default_factory=dict)
    hidden_shapes: list[int] = field(default_factory=list)
    deferred: list[tuple[int, DeferredFunctionResult]] = field(default_factory=list)


@dataclass
class GenerationResult:
    """Outcome of a PresentationGenerator run."""
    output_path: Path
    slide_count: int
    plan: SlidePlan
    diagnostics: list[Diagnostic] = field(default_factory=list)


def bind_slide(
    source: TemplateSlide, instance: SlideInstance, resolver: ContextResolver
) -> SlideOutput:
    """Resolve every paragraph of one template slide for one instance."""
    output = SlideOutput(source=source, instance=instance)
    for shape in source.shapes:
        hidden = False
        deferred: list[DeferredFunctionResult] = []
        for p_index, runs in enumerate(shape.paragraphs):
            result = reconcile_runs(runs, lambda text: resolver.resolve_text(text, instance))
            for r_index, (old, new) in enumerate(zip(runs, result.texts)):
                if new != old:
                    output.text_patches[(shape.index, p_index, r_index)] = new
            if result.hidden:
                hidden = True
                logger.debug(
                    f"Slide {instance.position}: hiding shape '{shape.name}' "
                    f"({'; '.join(result.reasons)})"
                )
            deferred.extend(result.deferred)

        if hidden:
            output.hidden_shapes.append(shape.index)
        else:
            output.deferred.extend((shape.index, d) for d in deferred)
    return output


def bind_plan(
    plan: SlidePlan, template_slides: list[TemplateSlide], resolver: ContextResolver
) -> list[SlideOutput]:
    """Resolve every planned instance against its template slide."""
    by_id = {slide.slide_id: slide for slide in template_slides}
    return [bind_slide(by_id[i.source_slide_id], i, resolver) for i in plan]


def generate(
    template_slides: list[TemplateSlide],
    root_data: Any,
    normalize_quotes: bool = True,
    diagnostics: Optional[list[Diagnostic]] = None,
) -> list[SlideOutput]:
    """Plan and resolve a template without touching any document.

    Args:
        template_slides: Backend-neutral template slides, in order.
        root_data: Data bound to the template.
        normalize_quotes: Replace typographic quotes inside expressions.
        diagnostics: Optional list that receives every diagnostic recorded.

    Returns:
        One SlideOutput per planned instance, in plan order.
    """
    collected: list[Diagnostic] = []
    templates = analyze_template(template_slides, collected)
    plan = generate_plan(templates, root_data)
    resolver = ContextResolver(root_data, plan.aliases, normalize_quotes=normalize_quotes)
    try:
        outputs = bind_plan(plan, template_slides, resolver)
    finally:
        resolver.clear()

    if diagnostics is not None:
        diagnostics.extend(collected + plan.diagnostics + resolver.diagnostics)
    return outputs


def apply_output(backend: DocumentBackend, output: SlideOutput) -> Any:
    """Clone the template slide and apply one SlideOutput to the clone."""
    slide = backend.clone_slide(output.source)
    for (shape_index, p_index, r_index), text in sorted(output.text_patches.items()):
        backend.set_run_text(slide, shape_index, p_index, r_index, text)
    for shape_index, result in output.deferred:
        backend.materialize_function_result(slide, shape_index, result)
    # Descending, so removing a shape never shifts one still to be hidden
    for shape_index in sorted(set(output.hidden_shapes), reverse=True):
        backend.hide_or_remove_element(slide, shape_index)
    return slide


class PresentationGenerator:
    """Orchestrates generation of a presentation from a template and data.

    Example:
        config = Config("config.yaml")
        result = PresentationGenerator(config).generate()
        print(f"{result.slide_count} slides -> {result.output_path}")
    """

    def __init__(self, config: Config, backend: Optional[DocumentBackend] = None):
        """Initialize the generator with configuration.

        Args:
            config: Configuration object with paths and settings.
            backend: Document backend; a PptxBackend over the configured
                template is opened when omitted.
        """
        self.config = config
        self._backend = backend

    @property
    def backend(self) -> DocumentBackend:
        """Lazy-open the backend for the configured template."""
        if self._backend is None:
            self._backend = PptxBackend(
                self.config.template_path,
                hide_mode=self.config.hide_mode,
                assets_dir=self.config.assets_dir,
            )
        return self._backend

    def analyze(self, diagnostics: Optional[list[Diagnostic]] = None) -> list[SlideTemplate]:
        """Analyze the configured template."""
        return analyze_template(self.backend.list_template_slides(), diagnostics)

    def plan(self) -> SlidePlan:
        """Analyze the template and plan it against the configured data."""
        self.config.validate_paths()
        diagnostics: list[Diagnostic] = []
        templates = self.analyze(diagnostics)
        plan = generate_plan(templates, load_data_file(self.config.data_path))
        plan.diagnostics[:0] = diagnostics
        return plan

    def generate(self, progress: Optional[ProgressCallback] = None) -> GenerationResult:
        """Generate the output presentation.

        Args:
            progress: Optional ``callback(phase, percentage, message)``.

        Returns:
            GenerationResult with the output path, slide count, plan and
            every diagnostic recorded.

        Raises:
            FileNotFoundError: If the template or data file is missing.
            BackendError: If the document cannot be read or written.
        """
        reporter = ProgressReporter(progress)
        self.config.validate_paths()
        diagnostics: list[Diagnostic] = []

        reporter.report(ProcessingPhase.TEMPLATE_ANALYSIS, 0, f"{self.config.template_path}")
        backend = self.backend
        template_slides = backend.list_template_slides()
        templates = analyze_template(template_slides, diagnostics)
        data = load_data_file(self.config.data_path)

        plan = generate_plan(templates, data, progress=reporter)
        diagnostics.extend(plan.diagnostics)
        if plan.aliases:
            logger.info(f"Aliases: {plan.aliases.as_dict()}")

        reporter.report(ProcessingPhase.DATA_BINDING, 40, f"{len(plan)} slide(s)")
        resolver = ContextResolver(
            data, plan.aliases, normalize_quotes=self.config.normalize_quotes
        )
        try:
            outputs = bind_plan(plan, template_slides, resolver)
        finally:
            resolver.clear()
        diagnostics.extend(resolver.diagnostics)

        reporter.report(ProcessingPhase.FUNCTION_PROCESSING, 60)
        for index, output in enumerate(outputs):
            apply_output(backend, output)
            reporter.report(
                ProcessingPhase.FUNCTION_PROCESSING, 60 + (30 * (index + 1)) // len(outputs)
            )

        reporter.report(ProcessingPhase.FINALIZATION, 90)
        if self.config.remove_template_slides:
            for slide in template_slides:
                backend.remove_slide(slide.handle)

        output_path = self.config.output_path
        backend.save(output_path)
        slide_count = len(outputs) + (0 if self.config.remove_template_slides else len(template_slides))
        reporter.report(ProcessingPhase.FINALIZATION, 100, f"{slide_count} slide(s)")

        if diagnostics:
            logger.warning(f"Generation finished with {len(diagnostics)} diagnostic(s)")
        return GenerationResult(
            output_path=output_path,
            slide_count=slide_count,
            plan=plan,
            diagnostics=diagnostics,
        )
