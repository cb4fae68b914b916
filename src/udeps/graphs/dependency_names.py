"""Per-package lookup tables mapping compiler-visible names to declared dependencies."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from udeps.graphs.resolved_graph import ResolvedGraph
from udeps.models.package import ALL_KINDS, DependencyEdge, DependencyKind, PackageId


def normalize_lib_name(name: str) -> str:
    """Fold `-` to `_` the way rustc names a library target."""
    return name.replace("-", "_")


@dataclass(frozen=True)
class NameTable:
    """
    Name lookups for one consuming package and one dependency kind.

    Attributes
    ----------
    by_alias : Mapping[str, str]
        Extern crate name passed to the compiler -> name_in_toml.
    by_library_name : Mapping[str, frozenset[str]]
        Normalized library name -> every name_in_toml that produces it.
    non_library : frozenset[str]
        Declared dependencies without a library target.
    """

    by_alias: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    by_library_name: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    non_library: frozenset[str] = frozenset()

    @classmethod
    def from_edges(cls, edges: Iterable[DependencyEdge]) -> NameTable:
        """
        Build a table from edges that all share one kind.

        Returns
        -------
        NameTable
            Frozen lookup table.
        """
        by_alias: dict[str, str] = {}
        by_library_name: dict[str, set[str]] = {}
        non_library: set[str] = set()
        for edge in edges:
            if edge.target_lib_name is None:
                non_library.add(edge.name_in_toml)
                continue
            by_alias[edge.alias] = edge.name_in_toml
            by_library_name.setdefault(normalize_lib_name(edge.target_lib_name), set()).add(
                edge.name_in_toml
            )
        return cls(
            by_alias=MappingProxyType(by_alias),
            by_library_name=MappingProxyType(
                {name: frozenset(names) for name, names in by_library_name.items()}
            ),
            non_library=frozenset(non_library),
        )

    @property
    def declared(self) -> frozenset[str]:
        """Every name_in_toml covered by this table."""
        names: set[str] = set(self.by_alias.values())
        for group in self.by_library_name.values():
            names.update(group)
        names.update(self.non_library)
        return frozenset(names)


@dataclass(frozen=True)
class DependencyNames:
    """NameTables of one package, one per DependencyKind."""

    package_id: PackageId
    normal: NameTable = field(default_factory=NameTable)
    development: NameTable = field(default_factory=NameTable)
    build: NameTable = field(default_factory=NameTable)

    def __getitem__(self, kind: DependencyKind) -> NameTable:
        return getattr(self, kind.value)

    def has_non_library(self) -> bool:
        """Return True when any kind declares a dependency without a library."""
        return any(self[kind].non_library for kind in ALL_KINDS)


def build_dependency_names(graph: ResolvedGraph, package_id: PackageId) -> DependencyNames:
    """
    Derive the NameTables for one package from its resolved edges.

    Parameters
    ----------
    graph
        Resolved package graph.
    package_id
        Consuming package.

    Returns
    -------
    DependencyNames
        Tables for the normal, development, and build kinds.
    """
    by_kind: dict[DependencyKind, list[DependencyEdge]] = {kind: [] for kind in ALL_KINDS}
    for edge in graph.dependencies(package_id):
        by_kind[edge.kind].append(edge)
    return DependencyNames(
        package_id=package_id,
        normal=NameTable.from_edges(by_kind[DependencyKind.NORMAL]),
        development=NameTable.from_edges(by_kind[DependencyKind.DEVELOPMENT]),
        build=NameTable.from_edges(by_kind[DependencyKind.BUILD]),
    )


def build_workspace_names(graph: ResolvedGraph) -> dict[PackageId, DependencyNames]:
    """
    Build NameTables for every workspace member.

    Returns
    -------
    dict[PackageId, DependencyNames]
        Tables keyed by member id.
    """
    return {
        member.id: build_dependency_names(graph, member.id) for member in graph.members()
    }
