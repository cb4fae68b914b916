"""Detect declared dependencies whose libraries share a normalized name."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from udeps.graphs.dependency_names import DependencyNames
from udeps.models.package import DependencyKind, PackageId

log = logging.getLogger(__name__)

NORMAL_DEV_KINDS = (DependencyKind.NORMAL, DependencyKind.DEVELOPMENT)
BUILD_KINDS = (DependencyKind.BUILD,)


@dataclass(frozen=True)
class AmbiguityReport:
    """
    Colliding declared names of one package.

    Each mapping goes from name_in_toml to the shared normalized library name.
    """

    package_id: PackageId
    normal_dev: Mapping[str, str]
    build: Mapping[str, str]

    @property
    def is_empty(self) -> bool:
        """Return True when no collisions were found."""
        return not (self.normal_dev or self.build)

    def render(self) -> str:
        """
        Render the warning as a tree, one branch per kind group.

        Returns
        -------
        str
            Multi-line warning text without a trailing newline.
        """
        lines = [
            "Currently `cargo-udeps` cannot distinguish multiple crates with the same `lib` name. "
            "This may cause false negative",
            f"`{self.package_id}`",
        ]
        edge, joint = (" ", "└") if not self.build else ("│", "├")
        for ambiguous, branch_edge, branch_joint, prefix in (
            (self.normal_dev, edge, joint, "(dev-)"),
            (self.build, " ", "└", "build-"),
        ):
            if not ambiguous:
                continue
            lines.append(f"{branch_joint}─── {prefix}dependencies")
            entries = sorted(ambiguous.items())
            for index, (dep, lib) in enumerate(entries):
                leaf = "└" if index == len(entries) - 1 else "├"
                lines.append(f'{branch_edge}    {leaf}─── "{dep}" → "{lib}"')
        return "\n".join(lines)


def _ambiguous_names(names: DependencyNames, kinds: Iterable[DependencyKind]) -> dict[str, str]:
    # Collisions are found within one kind; the group reports their union.
    ambiguous: dict[str, str] = {}
    for kind in kinds:
        for lib_name, declared in names[kind].by_library_name.items():
            if len(declared) > 1:
                ambiguous.update(dict.fromkeys(declared, lib_name))
    return ambiguous


def detect_ambiguities(names: DependencyNames) -> AmbiguityReport:
    """
    Find normalized library names claimed by more than one declared dependency.

    Each kind is checked on its own. Normal and development collisions are
    reported together; build collisions separately. One package declared
    once as a normal and once as a development dependency is not ambiguous.

    Returns
    -------
    AmbiguityReport
        Report, possibly empty.
    """
    return AmbiguityReport(
        package_id=names.package_id,
        normal_dev=_ambiguous_names(names, NORMAL_DEV_KINDS),
        build=_ambiguous_names(names, BUILD_KINDS),
    )


def warn_ambiguities(names_by_package: Mapping[PackageId, DependencyNames]) -> list[AmbiguityReport]:
    """
    Log a warning for every package with ambiguous library names.

    Returns
    -------
    list[AmbiguityReport]
        Non-empty reports, in package order.
    """
    reports: list[AmbiguityReport] = []
    for package_id in sorted(names_by_package):
        report = detect_ambiguities(names_by_package[package_id])
        if report.is_empty:
            continue
        log.warning("%s", report.render())
        reports.append(report)
    return reports
