"""Tests for per-package NameTables."""

from __future__ import annotations

import pytest

from tests._helpers.builders import MetadataBuilder
from udeps.graphs.dependency_names import (
    build_dependency_names,
    build_workspace_names,
    normalize_lib_name,
)
from udeps.models.package import ALL_KINDS, DependencyKind


def test_normalize_lib_name_folds_hyphens() -> None:
    """Library names use underscores where package names use hyphens."""
    if normalize_lib_name("serde-json") != "serde_json":
        pytest.fail("Hyphens should fold to underscores")


def test_tables_split_by_kind(metadata_builder: MetadataBuilder) -> None:
    """Each kind gets its own table of declared names."""
    app = metadata_builder.add_package("app", member=True)
    serde = metadata_builder.add_package("serde-json", registry=True)
    proptest = metadata_builder.add_package("proptest", registry=True)
    cc = metadata_builder.add_package("cc", registry=True)
    metadata_builder.add_dependency(app, serde)
    metadata_builder.add_dependency(app, proptest, kind="dev")
    metadata_builder.add_dependency(app, cc, kind="build")

    names = build_dependency_names(metadata_builder.graph(), metadata_builder.package_id(app))
    normal = names[DependencyKind.NORMAL]
    if dict(normal.by_alias) != {"serde_json": "serde-json"}:
        pytest.fail(f"Unexpected normal aliases {dict(normal.by_alias)}")
    if dict(normal.by_library_name) != {"serde_json": frozenset({"serde-json"})}:
        pytest.fail(f"Unexpected normal library names {dict(normal.by_library_name)}")
    if names[DependencyKind.DEVELOPMENT].declared != frozenset({"proptest"}):
        pytest.fail("proptest should be a development dependency")
    if names[DependencyKind.BUILD].declared != frozenset({"cc"}):
        pytest.fail("cc should be a build dependency")


def test_non_library_dependencies_are_listed_separately(
    metadata_builder: MetadataBuilder,
) -> None:
    """Dependencies without a library never appear in the compiler-visible lookups."""
    app = metadata_builder.add_package("app", member=True)
    tool = metadata_builder.add_package("tool", registry=True, lib_name=None)
    metadata_builder.add_dependency(app, tool)

    names = build_dependency_names(metadata_builder.graph(), metadata_builder.package_id(app))
    table = names[DependencyKind.NORMAL]
    if table.non_library != frozenset({"tool"}):
        pytest.fail(f"Unexpected non-library set {table.non_library}")
    if table.by_alias or table.by_library_name:
        pytest.fail("Non-library dependencies should not be resolvable by name")
    if not names.has_non_library():
        pytest.fail("has_non_library should report the binary-only dependency")


def test_renamed_dependency_is_reachable_by_alias_and_library(
    metadata_builder: MetadataBuilder,
) -> None:
    """A rename is reachable through its alias and through the original library name."""
    app = metadata_builder.add_package("app", member=True)
    futures = metadata_builder.add_package("futures-util", registry=True)
    metadata_builder.add_dependency(app, futures, rename="fu")

    table = build_dependency_names(
        metadata_builder.graph(), metadata_builder.package_id(app)
    )[DependencyKind.NORMAL]
    if table.by_alias.get("fu") != "fu":
        pytest.fail("Alias lookup should resolve the rename")
    if table.by_library_name.get("futures_util") != frozenset({"fu"}):
        pytest.fail("Library lookup should resolve the rename")


def test_every_declared_name_is_covered(metadata_builder: MetadataBuilder) -> None:
    """Each declared name appears in exactly one of the lookups of its kind."""
    app = metadata_builder.add_package("app", member=True)
    for index, lib_name in enumerate(("alpha", None, "gamma")):
        dep = metadata_builder.add_package(f"dep{index}", registry=True, lib_name=lib_name)
        metadata_builder.add_dependency(app, dep)

    graph = metadata_builder.graph()
    names = build_dependency_names(graph, metadata_builder.package_id(app))
    declared = {edge.name_in_toml for edge in graph.dependencies(metadata_builder.package_id(app))}
    covered: set[str] = set()
    for kind in ALL_KINDS:
        covered |= names[kind].declared
    if covered != declared:
        pytest.fail(f"Declared names {declared} not covered: {covered}")


def test_workspace_names_cover_members_only(metadata_builder: MetadataBuilder) -> None:
    """Only workspace members get NameTables; a member with no edges gets empty ones."""
    app = metadata_builder.add_package("app", member=True)
    empty = metadata_builder.add_package("empty", member=True)
    serde = metadata_builder.add_package("serde", registry=True)
    metadata_builder.add_dependency(app, serde)

    names = build_workspace_names(metadata_builder.graph())
    expected = {metadata_builder.package_id(app), metadata_builder.package_id(empty)}
    if set(names) != expected:
        pytest.fail(f"Unexpected member set {set(names)}")
    empty_names = names[metadata_builder.package_id(empty)]
    if any(empty_names[kind].declared for kind in ALL_KINDS):
        pytest.fail("A member without dependencies should have empty tables")
