"""Reconciliation of text runs with the expressions they contain.

Slide editors split paragraph text into formatting runs at arbitrary points,
so ``${Products[0].Name}`` may arrive as ``["${Prod", "ucts[0].Na", "me}"]``.
Reconciliation resolves expressions without ever leaving half an expression
in a run:

1. A run whose expressions all lie inside it is resolved in place.
2. Runs joined by a spanning expression are concatenated, resolved, and the
   result is redistributed over the same runs:
     a. proportionally to the original run lengths, never splitting a
        substituted value (skipped when the text shrank or grew more than 2x);
     b. one piece per run when there are enough runs;
     c. everything in the first run, the rest blank.

The run count never changes, so per-run formatting is preserved as far as the
text allows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from .context_resolver import DeferredFunctionResult, TextResolution
from .expression_parser import find_expression_spans

logger = logging.getLogger(__name__)

# Proportional redistribution is only used within these length ratios
MIN_LENGTH_RATIO = 0.5
MAX_LENGTH_RATIO = 2.0


@dataclass
class ReconcileResult:
    """Resolved run texts for one paragraph.

    Attributes:
        texts: New text of every run (same length as the input).
        hidden: True if any expression asked for its shape to be hidden.
        reasons: Hide reasons, for logging.
        deferred: Function results whose tokens appear in ``texts``.
    """
    texts: list[str]
    hidden: bool = False
    reasons: list[str] = field(default_factory=list)
    deferred: list[DeferredFunctionResult] = field(default_factory=list)

    def absorb(self, resolution: TextResolution):
        if resolution.hidden:
            self.hidden = True
            self.reasons.extend(resolution.reasons)
        self.deferred.extend(resolution.deferred)


def _spanning_groups(
    run_bounds: list[tuple[int, int]], spans: list[tuple[int, int]]
) -> list[tuple[int, int]]:
    """Run ranges ``(first, last)`` joined by expressions crossing run boundaries."""
    groups: list[tuple[int, int]] = []
    for start, end in spans:
        covered = [i for i, (a, b) in enumerate(run_bounds) if start < b and end > a]
        if len(covered) < 2:
            continue
        first, last = covered[0], covered[-1]
        if groups and first <= groups[-1][1]:
            groups[-1] = (groups[-1][0], max(last, groups[-1][1]))
        else:
            groups.append((first, last))
    return groups


def _split_proportionally(
    text: str, lengths: list[int], value_spans: list[tuple[int, int]]
) -> list[str] | None:
    original = sum(lengths)
    if original == 0 or not text:
        return None
    ratio = len(text) / original
    if ratio < MIN_LENGTH_RATIO or ratio > MAX_LENGTH_RATIO:
        return None

    cuts = []
    running = 0
    previous = 0
    for length in lengths[:-1]:
        running += length
        cut = round(running * ratio)
        for start, end in value_spans:
            if start < cut < end:
                cut = end
                break
        cut = min(max(cut, previous), len(text))
        cuts.append(cut)
        previous = cut

    pieces = []
    last = 0
    for cut in cuts:
        pieces.append(text[last:cut])
        last = cut
    pieces.append(text[last:])
    return pieces


def _split_by_value(
    text: str, count: int, value_spans: list[tuple[int, int]]
) -> list[str] | None:
    pieces: list[str] = []
    last = 0
    for start, end in value_spans:
        if start > last:
            pieces.append(text[last:start])
        if end > start:
            pieces.append(text[start:end])
        last = max(last, end)
    if last < len(text):
        pieces.append(text[last:])

    if len(pieces) > count:
        # Fold literal text into the value it precedes (trailing text into the last)
        values = [(s, e) for s, e in value_spans if e > s]
        if not values or len(values) > count:
            return None
        pieces = []
        last = 0
        for i, (_, end) in enumerate(values):
            stop = len(text) if i == len(values) - 1 else end
            pieces.append(text[last:stop])
            last = stop

    return pieces + [""] * (count - len(pieces))


def redistribute(text: str, lengths: list[int], value_spans: list[tuple[int, int]]) -> list[str]:
    """Split resolved ``text`` back over runs of the given original lengths."""
    count = len(lengths)
    if count == 1:
        return [text]
    pieces = _split_proportionally(text, lengths, value_spans)
    if pieces is None:
        pieces = _split_by_value(text, count, value_spans)
    if pieces is None:
        pieces = [text] + [""] * (count - 1)
    return pieces


def _protected_spans(resolution: TextResolution) -> list[tuple[int, int]]:
    """Substituted values plus any ${...} left literal, sorted and merged."""
    merged: list[tuple[int, int]] = []
    for start, end in sorted(resolution.spans + find_expression_spans(resolution.text)):
        if merged and start < merged[-1][1]:
            merged[-1] = (merged[-1][0], max(end, merged[-1][1]))
        else:
            merged.append((start, end))
    return merged


def reconcile_runs(
    runs: Sequence[str],
    resolve_text: Callable[[str], TextResolution],
) -> ReconcileResult:
    """Resolve the expressions of one paragraph given as run texts.

    Args:
        runs: Text of each run, in order.
        resolve_text: Resolves every expression in a string (usually
            ``lambda text: resolver.resolve_text(text, instance)``).

    Returns:
        ReconcileResult with one text per input run.
    """
    texts = list(runs)
    result = ReconcileResult(texts=texts)
    full = "".join(texts)
    if "${" not in full:
        return result

    run_bounds = []
    offset = 0
    for text in texts:
        run_bounds.append((offset, offset + len(text)))
        offset += len(text)

    spans = find_expression_spans(full)
    if not spans:
        return result
    groups = _spanning_groups(run_bounds, spans)
    grouped = {i for first, last in groups for i in range(first, last + 1)}

    # Stage 1: expressions contained in a single run
    for i, text in enumerate(texts):
        if i in grouped or "${" not in text:
            continue
        resolution = resolve_text(text)
        texts[i] = resolution.text
        result.absorb(resolution)

    # Stage 2: expressions spanning runs
    for first, last in groups:
        originals = texts[first:last + 1]
        resolution = resolve_text("".join(originals))
        result.absorb(resolution)
        pieces = redistribute(
            resolution.text, [len(text) for text in originals], _protected_spans(resolution)
        )
        texts[first:last + 1] = pieces
        logger.debug(f"Merged runs {first}-{last} to resolve a split expression")

    return result
