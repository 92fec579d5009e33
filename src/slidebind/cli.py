"""Command-line interface for the slidebind presentation generator."""

import argparse
import sys
import logging

from .config import Config
from .diagnostics import Diagnostic
from .generator import PresentationGenerator
from .template_analyzer import SlideTemplate


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list (defaults to sys.argv[1:])

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description='Generate a PowerPoint presentation from a template and JSON/YAML data.'
    )

    # Config file path
    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    # Path overrides
    parser.add_argument(
        '--template',
        help='Path to PowerPoint template file (overrides config)'
    )

    parser.add_argument(
        '--data',
        help='Path to JSON or YAML data file (overrides config)'
    )

    parser.add_argument(
        '--output',
        help='Path to output PowerPoint file (overrides config)'
    )

    # Dry-run modes
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        '--inspect',
        action='store_true',
        help='Print the template analysis (slide types, collections, directives) and exit'
    )
    mode.add_argument(
        '--plan-only',
        action='store_true',
        help='Print the slide plan for the data and exit without writing output'
    )

    return parser.parse_args(argv)


def print_analysis(templates: list[SlideTemplate]):
    """Print one block per analyzed template slide."""
    for template in templates:
        print(f"Slide {template.position + 1} (id {template.slide_id}): {template.type.value}")
        if template.collection:
            print(f"  Collection:      {template.collection}")
            print(f"  Items per slide: {template.items_per_slide}")
        for directive in template.directives:
            print(f"  Directive:       #{directive.type.value} {directive.collection_path}"
                  + (f" as {directive.alias_name}" if directive.alias_name else ""))
        for expression in template.expressions:
            print(f"  Expression:      {expression.text}")


def _configured(config: Config, key: str) -> str:
    try:
        return str(config.get_path(key))
    except ValueError:
        return "(not configured)"


def print_diagnostics(diagnostics: list[Diagnostic]):
    if not diagnostics:
        return
    print(f"\nDiagnostics ({len(diagnostics)}):")
    for diagnostic in diagnostics:
        print(f"  {diagnostic}")


def main(argv=None) -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    # Parse command-line arguments
    args = parse_arguments(argv)

    # Load configuration
    try:
        config = Config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        print(f"Please ensure the configuration file exists at: {args.config}")
        return 1
    except Exception as e:
        print(f"Error loading configuration: {e}")
        return 1

    # Apply CLI overrides if provided
    config.set_path('template', args.template)
    config.set_path('data', args.data)
    config.set_path('output', args.output)

    # Print banner and configuration
    print("=" * 60)
    print("slidebind Presentation Generator")
    print("=" * 60)
    print(f"Configuration: {args.config}")
    print(f"Template:      {_configured(config, 'template')}")
    print(f"Data:          {_configured(config, 'data')}")
    if not (args.inspect or args.plan_only):
        print(f"Output:        {_configured(config, 'output')}")
    print("=" * 60)

    generator = PresentationGenerator(config)
    try:
        if args.inspect:
            diagnostics: list[Diagnostic] = []
            print_analysis(generator.analyze(diagnostics))
            print_diagnostics(diagnostics)
            return 0

        if args.plan_only:
            plan = generator.plan()
            for line in plan.describe():
                print(line)
            print_diagnostics(plan.diagnostics)
            return 0

        result = generator.generate()
    except FileNotFoundError as e:
        print(f"\nError: {e}")
        return 1
    except Exception as e:
        logging.exception("Error generating presentation")
        print(f"\nError generating presentation: {e}")
        return 1

    print_diagnostics(result.diagnostics)
    print("\n" + "=" * 60)
    print(f"Done! {result.slide_count} slide(s) written to {result.output_path}")
    print("=" * 60)
    return 0


if __name__ == '__main__':
    sys.exit(main())
