"""Resolved package graph materialized as a NetworkX multigraph."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

import networkx as nx

from udeps.core.types import CargoDependency, CargoMetadata, CargoNodeDep, CargoPackage
from udeps.errors import GraphError, problem
from udeps.models.package import DependencyEdge, DependencyKind, PackageId, PackageInfo

log = logging.getLogger(__name__)

LIB_TARGET_KINDS = frozenset({"lib", "rlib", "dylib", "staticlib", "cdylib", "proc-macro"})


def _graph_error(detail: str, **extras: object) -> GraphError:
    return GraphError(
        problem(
            code="graph.invalid",
            title="Malformed resolved graph",
            detail=detail,
            extras=dict(extras),
        )
    )


def _package_id(pkg: CargoPackage) -> PackageId:
    try:
        name = pkg["name"]
        version = pkg["version"]
        manifest_path = Path(pkg["manifest_path"])
    except KeyError as exc:
        raise _graph_error(f"package entry missing field {exc.args[0]!r}", package=pkg.get("id")) from exc
    source = pkg.get("source")
    if source:
        return PackageId(name=name, version=version, source=source)
    return PackageId.for_path(name, version, manifest_path.parent)


def _lib_target_name(pkg: CargoPackage) -> str | None:
    for target in pkg.get("targets", []):
        if LIB_TARGET_KINDS.intersection(target.get("kind", [])):
            return target.get("name")
    return None


def _name_in_toml(
    declared: list[CargoDependency],
    target: PackageId,
    kind: DependencyKind,
    alias: str,
) -> str:
    """
    Find the manifest key for a resolved dependency.

    Renamed declarations are matched through the alias the resolver assigned;
    a plain declaration of the target package is the fallback.

    Returns
    -------
    str
        Name the dependency is declared under.
    """
    candidates = [
        dep
        for dep in declared
        if dep.get("name") == target.name and DependencyKind.from_cargo(dep.get("kind")) is kind
    ]
    for dep in candidates:
        rename = dep.get("rename")
        if rename and rename.replace("-", "_") == alias:
            return rename
    for dep in candidates:
        if not dep.get("rename"):
            return target.name
    if candidates and candidates[0].get("rename"):
        return str(candidates[0]["rename"])
    return target.name


@dataclass
class ResolvedGraph:
    """
    Package graph with one edge per (declaring package, kind, name_in_toml).

    Nodes are `PackageId` values carrying a `PackageInfo` under the `info`
    attribute; edges carry a `DependencyEdge` under the `edge` attribute.
    """

    graph: nx.MultiDiGraph = field(default_factory=nx.MultiDiGraph)
    member_ids: frozenset[PackageId] = frozenset()

    @classmethod
    def from_cargo_metadata(cls, payload: CargoMetadata) -> ResolvedGraph:
        """
        Build the graph from a `cargo metadata --format-version 1` document.

        Parameters
        ----------
        payload
            Parsed metadata document.

        Returns
        -------
        ResolvedGraph
            Materialized graph.

        Raises
        ------
        GraphError
            When the document lacks the resolve section or references unknown packages.
        """
        graph = nx.MultiDiGraph()
        by_raw_id: dict[str, PackageId] = {}
        declared_by_id: dict[PackageId, list[CargoDependency]] = {}
        for pkg in payload.get("packages", []):
            pid = _package_id(pkg)
            by_raw_id[pkg.get("id", str(pid))] = pid
            declared_by_id[pid] = list(pkg.get("dependencies", []))
            info = PackageInfo(
                id=pid,
                manifest_path=Path(pkg["manifest_path"]),
                lib_name=_lib_target_name(pkg),
                metadata=dict(pkg.get("metadata") or {}),
            )
            graph.add_node(pid, info=info)

        resolve = payload.get("resolve")
        if not resolve:
            message = "metadata has no `resolve` section (was --no-deps used?)"
            raise _graph_error(message)

        for node in resolve.get("nodes", []):
            source = cls._lookup(by_raw_id, node.get("id", ""))
            for dep in node.get("deps", []):
                cls._add_edges(graph, by_raw_id, declared_by_id[source], source, dep)

        members = frozenset(
            cls._lookup(by_raw_id, raw) for raw in payload.get("workspace_members", [])
        )
        log.debug(
            "Resolved graph: %d packages, %d edges, %d members",
            graph.number_of_nodes(),
            graph.number_of_edges(),
            len(members),
        )
        return cls(graph=graph, member_ids=members)

    @classmethod
    def from_json_file(cls, path: Path) -> ResolvedGraph:
        """
        Load a saved `cargo metadata` document from disk.

        Returns
        -------
        ResolvedGraph
            Materialized graph.

        Raises
        ------
        GraphError
            When the file cannot be read or parsed.
        """
        try:
            payload = json.loads(path.read_text(encoding="utf8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise _graph_error(f"could not load metadata from {path}: {exc}") from exc
        return cls.from_cargo_metadata(payload)

    @staticmethod
    def _lookup(by_raw_id: dict[str, PackageId], raw: str) -> PackageId:
        try:
            return by_raw_id[raw]
        except KeyError:
            message = f"could not find `{raw}`"
            raise _graph_error(message, package=raw) from None

    @classmethod
    def _add_edges(
        cls,
        graph: nx.MultiDiGraph,
        by_raw_id: dict[str, PackageId],
        declared: list[CargoDependency],
        source: PackageId,
        dep: CargoNodeDep,
    ) -> None:
        target = cls._lookup(by_raw_id, dep.get("pkg", ""))
        alias = dep.get("name", target.name.replace("-", "_"))
        target_info: PackageInfo = graph.nodes[target]["info"]
        # Older Cargo releases omit dep_kinds; those only resolve normal deps.
        dep_kinds = dep.get("dep_kinds") or [{"kind": None}]
        for dep_kind in dep_kinds:
            try:
                kind = DependencyKind.from_cargo(dep_kind.get("kind"))
            except ValueError as exc:
                raise _graph_error(str(exc), package=str(source)) from exc
            name_in_toml = _name_in_toml(declared, target, kind, alias)
            edge = DependencyEdge(
                source=source,
                target=target,
                kind=kind,
                name_in_toml=name_in_toml,
                alias=alias,
                target_lib_name=target_info.lib_name,
            )
            # Platform-specific duplicates of one declaration collapse onto one key.
            graph.add_edge(source, target, key=(kind, name_in_toml), edge=edge)

    def package(self, package_id: PackageId) -> PackageInfo:
        """
        Return the PackageInfo for an id.

        Raises
        ------
        GraphError
            When the id is not part of the graph.
        """
        if package_id not in self.graph:
            message = f"could not find `{package_id}`"
            raise _graph_error(message, package=str(package_id))
        return self.graph.nodes[package_id]["info"]

    def packages(self) -> Iterator[PackageInfo]:
        """Yield every resolved package in id order."""
        for package_id in sorted(self.graph.nodes):
            yield self.graph.nodes[package_id]["info"]

    def members(self) -> list[PackageInfo]:
        """Return workspace members in id order."""
        return [self.package(pid) for pid in sorted(self.member_ids)]

    def dependencies(self, package_id: PackageId) -> list[DependencyEdge]:
        """
        Return the dependency edges declared by a package.

        Returns
        -------
        list[DependencyEdge]
            Edges ordered by kind, then declared name.
        """
        edges = [data["edge"] for _, _, data in self.graph.out_edges(package_id, data=True)]
        return sorted(edges, key=lambda e: (e.kind.value, e.name_in_toml, e.target))
