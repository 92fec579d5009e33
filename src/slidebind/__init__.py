"""slidebind: data-bound PowerPoint generation from annotated templates."""

from .structured import (
    MISSING,
    get_member,
    get_index,
    to_structured,
)
from .diagnostics import (
    Diagnostic,
    DiagnosticKind,
)
from .expression_parser import (
    BindingExpression,
    DataPath,
    PathSegment,
    FunctionCall,
    Directive,
    DirectiveType,
    RangeBoundary,
    parse_expression,
    parse_expressions,
    parse_directives,
    normalize_quotes,
    ExpressionSyntaxError,
)
from .aliases import (
    AliasTable,
    AliasCycleError,
)
from .template_analyzer import (
    TemplateSlide,
    TextShape,
    SlideTemplate,
    SlideType,
    analyze_template,
)
from .slide_plan import (
    ContextSegment,
    ContextPath,
    SlideInstance,
    SlidePlan,
    generate_plan,
)
from .context_resolver import (
    ContextResolver,
    DeferredFunctionResult,
    HideSignal,
    TextResolution,
)
from .value_formatter import format_value
from .run_reconciler import (
    ReconcileResult,
    reconcile_runs,
)
from .progress import (
    ProcessingPhase,
    ProgressReporter,
)
from .backend import (
    DocumentBackend,
    PptxBackend,
    BackendError,
)
from .generator import (
    SlideOutput,
    GenerationResult,
    PresentationGenerator,
    generate,
)

__all__ = [
    # Structured values
    "MISSING",
    "get_member",
    "get_index",
    "to_structured",
    # Diagnostics
    "Diagnostic",
    "DiagnosticKind",
    # Expression and directive parsing
    "BindingExpression",
    "DataPath",
    "PathSegment",
    "FunctionCall",
    "Directive",
    "DirectiveType",
    "RangeBoundary",
    "parse_expression",
    "parse_expressions",
    "parse_directives",
    "normalize_quotes",
    "ExpressionSyntaxError",
    # Aliases
    "AliasTable",
    "AliasCycleError",
    # Template analysis
    "TemplateSlide",
    "TextShape",
    "SlideTemplate",
    "SlideType",
    "analyze_template",
    # Slide planning
    "ContextSegment",
    "ContextPath",
    "SlideInstance",
    "SlidePlan",
    "generate_plan",
    # Resolution and formatting
    "ContextResolver",
    "DeferredFunctionResult",
    "HideSignal",
    "TextResolution",
    "format_value",
    "ReconcileResult",
    "reconcile_runs",
    # Generation
    "ProcessingPhase",
    "ProgressReporter",
    "DocumentBackend",
    "PptxBackend",
    "BackendError",
    "SlideOutput",
    "GenerationResult",
    "PresentationGenerator",
    "generate",
]
