"""Alias table built from ``#alias`` directives.

An alias gives a short name to a long data path:

    #alias: Company.Engineering.Staff as Engineers

after which ``${Engineers[0].Name}`` reads ``Company.Engineering.Staff[0].Name``.
Aliases may refer to other aliases; they are expanded transitively when the
table is built, so rewriting a path is a single, idempotent substitution.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable

from .diagnostics import Diagnostic, DiagnosticKind, report
from .expression_parser import (
    BindingExpression,
    DataPath,
    Directive,
    DirectiveType,
    ExpressionSyntaxError,
)

logger = logging.getLogger(__name__)


class AliasCycleError(ValueError):
    """Raised when aliases refer to each other in a loop."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Alias cycle: {' -> '.join(cycle)}")


def _expand(name: str, raw: dict[str, DataPath], trail: list[str]) -> DataPath:
    if name in trail:
        raise AliasCycleError(trail[trail.index(name):] + [name])
    target = raw[name]
    if target.root in raw:
        return target.replace_root(_expand(target.root, raw, trail + [name]))
    return target


@dataclass
class AliasTable:
    """Mapping of alias name to fully expanded data path."""
    aliases: dict[str, DataPath] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.aliases)

    def __contains__(self, name: str) -> bool:
        return name in self.aliases

    def as_dict(self) -> dict[str, str]:
        return {name: str(path) for name, path in self.aliases.items()}

    @classmethod
    def from_mapping(cls, mapping: dict[str, str]) -> "AliasTable":
        """Build a table from ``{alias: path}`` strings.

        Raises:
            AliasCycleError: If the aliases refer to each other in a loop.
            ExpressionSyntaxError: If a target path is malformed.
        """
        raw = {name: DataPath.parse(path) for name, path in mapping.items()}
        return cls({name: _expand(name, raw, []) for name in raw})

    @classmethod
    def from_directives(
        cls,
        directives: Iterable[Directive],
        diagnostics: list[Diagnostic] | None = None,
    ) -> "AliasTable":
        """Build a table from ``#alias`` directives.

        Aliases that take part in a cycle are dropped and reported as
        ALIAS_CYCLE diagnostics; the remaining aliases are still usable.
        """
        raw: dict[str, DataPath] = {}
        for directive in directives:
            if directive.type != DirectiveType.ALIAS or not directive.alias_name:
                continue
            if directive.alias_name in raw and str(raw[directive.alias_name]) != directive.collection_path:
                logger.warning(
                    f"Alias '{directive.alias_name}' redefined: "
                    f"'{raw[directive.alias_name]}' -> '{directive.collection_path}'"
                )
            try:
                raw[directive.alias_name] = DataPath.parse(directive.collection_path)
            except ExpressionSyntaxError as e:
                report(diagnostics, DiagnosticKind.PARSE, f"Alias '{directive.alias_name}': {e}")

        resolved: dict[str, DataPath] = {}
        for name in raw:
            try:
                resolved[name] = _expand(name, raw, [])
            except AliasCycleError as e:
                report(diagnostics, DiagnosticKind.ALIAS_CYCLE, f"Dropping alias '{name}': {e}")

        for name, path in resolved.items():
            logger.debug(f"Alias '{name}' -> '{path}'")
        return cls(resolved)

    def rewrite_path(self, path: DataPath) -> DataPath:
        """Expand a leading alias in ``path``; other paths are returned as-is."""
        target = self.aliases.get(path.root)
        if target is None:
            return path
        return path.replace_root(target)

    def rewrite_path_text(self, text: str) -> str:
        """Expand a leading alias in a path string."""
        if not self.aliases or not text:
            return text
        try:
            return str(self.rewrite_path(DataPath.parse(text)))
        except ExpressionSyntaxError:
            return text

    def rewrite_expression(self, expression: BindingExpression) -> BindingExpression:
        """Return ``expression`` with every path alias-expanded."""
        if not self.aliases:
            return expression

        if expression.function is not None:
            args = tuple(
                self.rewrite_path(arg) if isinstance(arg, DataPath) else arg
                for arg in expression.function.args
            )
            function = replace(expression.function, args=args)
            references = tuple(ref for p in function.paths() for ref in p.indexed_references())
            return replace(expression, function=function, references=references)

        if expression.path is None:
            return expression
        path = self.rewrite_path(expression.path)
        if path is expression.path:
            return expression
        return replace(expression, path=path, references=tuple(path.indexed_references()))

    def rewrite_directive(self, directive: Directive) -> Directive:
        """Return ``directive`` with its collection path alias-expanded."""
        if directive.type == DirectiveType.ALIAS:
            return directive
        rewritten = self.rewrite_path_text(directive.collection_path)
        if rewritten == directive.collection_path:
            return directive
        return replace(directive, collection_path=rewritten)

