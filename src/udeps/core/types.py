"""Typed shapes for the JSON documents udeps reads from Cargo."""

from __future__ import annotations

from typing import TypedDict

# ---------------------------------------------------------------------------
# `cargo metadata --format-version 1` types
# ---------------------------------------------------------------------------


class CargoTarget(TypedDict, total=False):
    """Build target of a package (lib, bin, proc-macro, custom-build, ...)."""

    name: str
    kind: list[str]
    crate_types: list[str]
    src_path: str


class CargoDependency(TypedDict, total=False):
    """Dependency declaration as written in a package manifest."""

    name: str
    rename: str | None
    kind: str | None
    optional: bool
    target: str | None
    source: str | None


class CargoPackage(TypedDict, total=False):
    """Package entry in the `packages` array."""

    id: str
    name: str
    version: str
    source: str | None
    manifest_path: str
    targets: list[CargoTarget]
    dependencies: list[CargoDependency]
    metadata: dict[str, object] | None


class CargoDepKind(TypedDict, total=False):
    """Kind/platform pair attached to a resolved dependency."""

    kind: str | None
    target: str | None


class CargoNodeDep(TypedDict, total=False):
    """Resolved dependency of one node; `name` is the extern crate name."""

    name: str
    pkg: str
    dep_kinds: list[CargoDepKind]


class CargoNode(TypedDict, total=False):
    """Node in the resolved graph."""

    id: str
    deps: list[CargoNodeDep]
    features: list[str]


class CargoResolve(TypedDict, total=False):
    """The `resolve` section of the metadata document."""

    nodes: list[CargoNode]
    root: str | None


class CargoMetadata(TypedDict, total=False):
    """Top-level metadata document."""

    packages: list[CargoPackage]
    workspace_members: list[str]
    resolve: CargoResolve | None
    workspace_root: str
    target_directory: str
