"""Render an Outcome as a human-readable tree or a single JSON line."""

from __future__ import annotations

import json
from typing import TextIO

from udeps.analytics.outcome import Outcome, OutcomeUnusedDeps
from udeps.config.models import OutputKind
from udeps.models.package import DependencyKind

SUCCESS_LINE = "All deps seem to have been used."
HEADER_LINE = "unused dependencies:"


def _package_tree(entry: OutcomeUnusedDeps) -> list[str]:
    lines: list[str] = []
    branches = [
        (entry.normal, not (entry.development or entry.build), DependencyKind.NORMAL),
        (entry.development, not entry.build, DependencyKind.DEVELOPMENT),
        (entry.build, True, DependencyKind.BUILD),
    ]
    for deps, is_last, kind in branches:
        if not deps:
            continue
        edge, joint = (" ", "└") if is_last else ("│", "├")
        lines.append(f"{joint}─── {kind.section_prefix}dependencies")
        for index, dep in enumerate(deps):
            leaf = "└" if index == len(deps) - 1 else "├"
            lines.append(f'{edge}    {leaf}─── "{dep}"')
    return lines


def render_human(outcome: Outcome) -> str:
    """
    Render the outcome as tree text.

    Returns
    -------
    str
        Report text, newline terminated.
    """
    if outcome.success:
        return SUCCESS_LINE + "\n"
    lines = [HEADER_LINE]
    for package_id in sorted(outcome.unused_deps):
        lines.append(f"`{package_id}`")
        lines.extend(_package_tree(outcome.unused_deps[package_id]))
    text = "\n".join(lines) + "\n"
    if outcome.note:
        text += outcome.note
    return text


def render_json(outcome: Outcome) -> str:
    """
    Render the outcome as one line of JSON.

    Returns
    -------
    str
        Serialized outcome, newline terminated.
    """
    return json.dumps(outcome.to_dict(), ensure_ascii=False) + "\n"


def write_outcome(outcome: Outcome, output: OutputKind, stream: TextIO) -> None:
    """Write the outcome to `stream` in the selected format and flush."""
    renderer = render_json if output is OutputKind.JSON else render_human
    stream.write(renderer(outcome))
    stream.flush()
