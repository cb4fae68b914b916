"""Sequence the analysis phases: names, ambiguity, matching, aggregation."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from udeps.analytics.outcome import IgnoreLoader, Outcome, aggregate_outcome
from udeps.analytics.usage import ArtifactLoader, UsageMatcher
from udeps.config.manifest import load_ignore_config
from udeps.config.models import AnalysisOptions
from udeps.graphs.ambiguity import AmbiguityReport, warn_ambiguities
from udeps.graphs.dependency_names import build_workspace_names
from udeps.graphs.resolved_graph import ResolvedGraph
from udeps.ingestion.invocation import InvocationRecord
from udeps.ingestion.save_analysis import load_usage_artifact

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNUSED_FOUND = 1
EXIT_ERROR = 2


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of a run plus the advisories raised along the way."""

    outcome: Outcome
    ambiguities: tuple[AmbiguityReport, ...] = ()

    @property
    def exit_code(self) -> int:
        """Return 0 when every dependency was used, 1 otherwise."""
        return EXIT_OK if self.outcome.success else EXIT_UNUSED_FOUND


def analyze(
    graph: ResolvedGraph,
    records: Iterable[InvocationRecord],
    *,
    options: AnalysisOptions | None = None,
    loader: ArtifactLoader = load_usage_artifact,
    ignore_loader: IgnoreLoader = load_ignore_config,
) -> AnalysisResult:
    """
    Run the reconciliation engine over a finished build.

    Parameters
    ----------
    graph
        Resolved package graph.
    records
        Invocation records of local units from the build.
    options
        Run options (notes depend on the target selection).
    loader
        Loads the usage artifact of a record.
    ignore_loader
        Loads a package's ignore table.

    Returns
    -------
    AnalysisResult
        Outcome and ambiguity reports.
    """
    names = build_workspace_names(graph)
    ambiguities = warn_ambiguities(names)
    used = UsageMatcher(names, loader=loader).match(records)
    outcome = aggregate_outcome(
        graph,
        names,
        used,
        options=options,
        ignore_loader=ignore_loader,
    )
    log.info(
        "Analysis complete: %d package(s) with findings, success=%s",
        sum(1 for entry in outcome.unused_deps.values() if not entry.is_empty),
        outcome.success,
    )
    return AnalysisResult(outcome=outcome, ambiguities=tuple(ambiguities))
