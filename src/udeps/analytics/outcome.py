"""Aggregate declared and used dependencies into the final outcome."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from udeps.analytics.usage import UsedDependencies
from udeps.config.manifest import load_ignore_config
from udeps.config.models import AnalysisOptions, IgnoreConfig
from udeps.graphs.dependency_names import DependencyNames
from udeps.graphs.resolved_graph import ResolvedGraph
from udeps.models.package import ALL_KINDS, DependencyKind, PackageId, PackageInfo

log = logging.getLogger(__name__)

IgnoreLoader = Callable[[PackageInfo], IgnoreConfig | None]

NOTE_OTHER_TARGETS = "Note: These dependencies might be used by other targets.\n"
NOTE_ALL_TARGETS_HINT = (
    "      To find dependencies that are not used by any target, enable `--all-targets`.\n"
)
NOTE_NON_LIBRARY = (
    "Note: Some dependencies are non-library packages.\n"
    "      `cargo-udeps` regards them as unused.\n"
)
NOTE_FALSE_POSITIVE = (
    "Note: They might be false-positive.\n"
    "      For example, `cargo-udeps` cannot detect usage of crates that are only used in doc-tests.\n"
    "      To ignore some of dependencies, write `package.metadata.cargo-udeps.ignore` in Cargo.toml.\n"
)


@dataclass(frozen=True)
class OutcomeUnusedDeps:
    """Unused dependencies of one package, sorted per kind."""

    manifest_path: str
    normal: tuple[str, ...] = ()
    development: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __getitem__(self, kind: DependencyKind) -> tuple[str, ...]:
        return getattr(self, kind.value)

    @property
    def is_empty(self) -> bool:
        """Return True when no kind has unused dependencies."""
        return not (self.normal or self.development or self.build)

    def to_dict(self) -> dict[str, object]:
        """
        Serialize to a JSON-friendly dict.

        Returns
        -------
        dict[str, object]
            Manifest path plus one list per kind.
        """
        return {
            "manifest_path": self.manifest_path,
            "normal": list(self.normal),
            "development": list(self.development),
            "build": list(self.build),
        }


@dataclass(frozen=True)
class Outcome:
    """Result of one analysis run; the unit of report serialization."""

    success: bool
    unused_deps: Mapping[PackageId, OutcomeUnusedDeps] = field(
        default_factory=lambda: MappingProxyType({})
    )
    note: str | None = None

    def to_dict(self) -> dict[str, object]:
        """
        Serialize to a JSON-friendly dict keyed by rendered package ids.

        Returns
        -------
        dict[str, object]
            Outcome payload.
        """
        return {
            "success": self.success,
            "unused_deps": {
                str(package_id): self.unused_deps[package_id].to_dict()
                for package_id in sorted(self.unused_deps)
            },
            "note": self.note,
        }


def build_note(
    options: AnalysisOptions,
    names_by_package: Mapping[PackageId, DependencyNames],
) -> str:
    """
    Compose the advisory note attached to a failing outcome.

    Returns
    -------
    str
        Static note text, newline terminated.
    """
    note = ""
    if not options.all_targets:
        note += NOTE_OTHER_TARGETS
        if not options.has_target_selection:
            note += NOTE_ALL_TARGETS_HINT
    if any(names.has_non_library() for names in names_by_package.values()):
        note += NOTE_NON_LIBRARY
    note += NOTE_FALSE_POSITIVE
    return note


def aggregate_outcome(
    graph: ResolvedGraph,
    names_by_package: Mapping[PackageId, DependencyNames],
    used: UsedDependencies,
    *,
    options: AnalysisOptions | None = None,
    ignore_loader: IgnoreLoader = load_ignore_config,
) -> Outcome:
    """
    Compute `declared - used - ignored` for every member and kind.

    Parameters
    ----------
    graph
        Resolved package graph (manifest paths and metadata).
    names_by_package
        NameTables of every workspace member.
    used
        Usage evidence from the matcher.
    options
        Run options; decide which notes accompany a failing outcome.
    ignore_loader
        Returns the ignore table of a package.

    Returns
    -------
    Outcome
        Final outcome; packages with no candidates are absent.

    Raises
    ------
    ManifestMetadataError
        When a package's ignore table cannot be parsed.
    """
    options = options or AnalysisOptions()
    unused: dict[PackageId, dict[DependencyKind, set[str]]] = {}
    for package_id in sorted(names_by_package):
        names = names_by_package[package_id]
        if not any(names[kind].declared for kind in ALL_KINDS):
            continue
        # Loaded for every member with dependencies, used or not.
        ignore = ignore_loader(graph.package(package_id))
        for kind in ALL_KINDS:
            for name_in_toml in sorted(names[kind].declared):
                if used.is_used(kind, package_id, name_in_toml):
                    continue
                bucket = unused.setdefault(package_id, {k: set() for k in ALL_KINDS})[kind]
                if ignore is not None and ignore.contains(kind, name_in_toml):
                    log.info("Ignoring `%s` (%s)", name_in_toml, kind.value)
                    continue
                bucket.add(name_in_toml)

    unused_deps = {
        package_id: OutcomeUnusedDeps(
            manifest_path=str(graph.package(package_id).manifest_path),
            normal=tuple(sorted(by_kind[DependencyKind.NORMAL])),
            development=tuple(sorted(by_kind[DependencyKind.DEVELOPMENT])),
            build=tuple(sorted(by_kind[DependencyKind.BUILD])),
        )
        for package_id, by_kind in unused.items()
    }
    success = all(entry.is_empty for entry in unused_deps.values())
    note = None if success else build_note(options, names_by_package)
    return Outcome(success=success, unused_deps=MappingProxyType(unused_deps), note=note)
