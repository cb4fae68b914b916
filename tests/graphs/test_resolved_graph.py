"""Tests for building the resolved package graph from `cargo metadata` output."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests._helpers.builders import MetadataBuilder
from udeps.errors import GraphError
from udeps.graphs.resolved_graph import ResolvedGraph
from udeps.models.package import DependencyKind


def test_graph_materializes_packages_and_edges(metadata_builder: MetadataBuilder) -> None:
    """Every declared dependency becomes one edge keyed by kind and manifest name."""
    app = metadata_builder.add_package("app", member=True)
    serde = metadata_builder.add_package("serde", registry=True)
    cc = metadata_builder.add_package("cc", registry=True)
    metadata_builder.add_dependency(app, serde)
    metadata_builder.add_dependency(app, cc, kind="build")

    graph = metadata_builder.graph()
    app_id = metadata_builder.package_id(app)
    edges = graph.dependencies(app_id)
    observed = [(edge.kind, edge.name_in_toml, edge.alias) for edge in edges]
    expected = [
        (DependencyKind.BUILD, "cc", "cc"),
        (DependencyKind.NORMAL, "serde", "serde"),
    ]
    if observed != expected:
        pytest.fail(f"Unexpected edges: {observed}")
    if [info.id for info in graph.members()] != [app_id]:
        pytest.fail("Only app should be a workspace member")
    if len(list(graph.packages())) != 3:
        pytest.fail("Graph should contain all three packages")


def test_renamed_dependency_uses_rename_as_manifest_name(
    metadata_builder: MetadataBuilder,
) -> None:
    """A renamed dependency is keyed by its rename; the alias follows the rename."""
    app = metadata_builder.add_package("app", member=True)
    futures = metadata_builder.add_package("futures-util", registry=True)
    metadata_builder.add_dependency(app, futures, rename="fu")

    edge = metadata_builder.graph().dependencies(metadata_builder.package_id(app))[0]
    if (edge.name_in_toml, edge.alias, edge.target_lib_name) != ("fu", "fu", "futures_util"):
        pytest.fail(f"Unexpected renamed edge {edge}")


def test_same_package_under_two_kinds_yields_two_edges(
    metadata_builder: MetadataBuilder,
) -> None:
    """Declaring one package as normal and dev produces an edge per kind."""
    app = metadata_builder.add_package("app", member=True)
    log = metadata_builder.add_package("log", registry=True)
    metadata_builder.add_dependency(app, log)
    metadata_builder.add_dependency(app, log, kind="dev")

    edges = metadata_builder.graph().dependencies(metadata_builder.package_id(app))
    kinds = sorted(edge.kind.value for edge in edges)
    if kinds != ["development", "normal"]:
        pytest.fail(f"Expected one edge per kind, got {kinds}")


def test_non_library_target_has_no_lib_name(metadata_builder: MetadataBuilder) -> None:
    """Packages that only ship binaries resolve with no library name."""
    app = metadata_builder.add_package("app", member=True)
    tool = metadata_builder.add_package("tool", registry=True, lib_name=None)
    metadata_builder.add_dependency(app, tool)

    graph = metadata_builder.graph()
    edge = graph.dependencies(metadata_builder.package_id(app))[0]
    if edge.target_lib_name is not None:
        pytest.fail("Binary-only dependency should carry no library name")
    if graph.package(metadata_builder.package_id(tool)).has_library:
        pytest.fail("Binary-only package should report no library")


def test_missing_resolve_section_is_rejected(metadata_builder: MetadataBuilder) -> None:
    """Metadata produced with --no-deps cannot be analysed."""
    metadata_builder.add_package("app", member=True)
    payload = metadata_builder.build()
    payload["resolve"] = None
    with pytest.raises(GraphError, match="resolve"):
        ResolvedGraph.from_cargo_metadata(payload)


def test_unknown_package_reference_is_rejected(metadata_builder: MetadataBuilder) -> None:
    """Resolve nodes must only reference known packages."""
    metadata_builder.add_package("app", member=True)
    payload = metadata_builder.build()
    payload["resolve"]["nodes"][0]["deps"] = [
        {"name": "ghost", "pkg": "ghost 0.0.0", "dep_kinds": [{"kind": None, "target": None}]}
    ]
    with pytest.raises(GraphError, match="ghost"):
        ResolvedGraph.from_cargo_metadata(payload)


def test_graph_loads_from_json_file(metadata_builder: MetadataBuilder, tmp_path: Path) -> None:
    """Saved metadata documents load the same graph."""
    app = metadata_builder.add_package("app", member=True)
    path = metadata_builder.write(tmp_path / "metadata.json")
    graph = ResolvedGraph.from_json_file(path)
    if graph.members()[0].id != metadata_builder.package_id(app):
        pytest.fail("Member should survive the file round trip")


def test_graph_rejects_unreadable_json(tmp_path: Path) -> None:
    """Invalid metadata files raise a GraphError."""
    path = tmp_path / "metadata.json"
    path.write_text("{not json", encoding="utf8")
    with pytest.raises(GraphError):
        ResolvedGraph.from_json_file(path)


def test_package_lookup_of_unknown_id_fails(metadata_builder: MetadataBuilder) -> None:
    """Looking up an id that is not in the graph raises."""
    metadata_builder.add_package("app", member=True)
    graph = metadata_builder.graph()
    other = MetadataBuilder(root=metadata_builder.root / "other")
    stray = other.package_id(other.add_package("stray"))
    with pytest.raises(GraphError, match="could not find"):
        graph.package(stray)
