"""Tests for the `[package.metadata.cargo-udeps]` ignore table and run options."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from udeps.config.manifest import (
    load_ignore_config,
    parse_package_metadata,
    read_manifest_metadata,
)
from udeps.config.models import AnalysisOptions, IgnoreConfig
from udeps.errors import ManifestMetadataError
from udeps.models.package import DependencyKind, PackageId, PackageInfo

MANIFEST = """\
[package]
name = "app"
version = "0.1.0"

[package.metadata.cargo-udeps.ignore]
normal = ["left-pad"]
development = ["proptest"]

[package.metadata.docs.rs]
all-features = true
"""


def test_parse_ignore_table() -> None:
    """Every kind of the ignore table is parsed; other tools' keys pass through."""
    config = parse_package_metadata(
        {
            "cargo-udeps": {"ignore": {"normal": ["left-pad"], "build": ["cc"]}},
            "docs": {"rs": {"all-features": True}},
        }
    )
    if config is None:
        pytest.fail("Expected an ignore table")
    if not config.contains(DependencyKind.NORMAL, "left-pad"):
        pytest.fail("left-pad should be ignored for normal")
    if not config.contains(DependencyKind.BUILD, "cc") or config.contains(
        DependencyKind.NORMAL, "cc"
    ):
        pytest.fail("cc should be ignored for build only")


def test_metadata_without_udeps_key_ignores_nothing() -> None:
    """Metadata for other tools yields an empty ignore table."""
    config = parse_package_metadata({"docs": {"rs": {}}})
    if config != IgnoreConfig():
        pytest.fail(f"Expected an empty ignore table, got {config}")
    if parse_package_metadata(None) is not None:
        pytest.fail("Packages without metadata have no ignore table")


@pytest.mark.parametrize(
    "metadata",
    [
        {"cargo-udeps": {"ignore": {"normal": "left-pad"}}},
        {"cargo-udeps": {"ignore": {"optional": ["x"]}}},
        {"cargo-udeps": {"ignored": {}}},
    ],
)
def test_malformed_ignore_table_is_rejected(metadata: dict[str, object]) -> None:
    """Ignore tables of the wrong shape fail loudly."""
    with pytest.raises(ManifestMetadataError, match="package.metadata.cargo-udeps"):
        parse_package_metadata(metadata, manifest_path=Path("/ws/app/Cargo.toml"))


def test_manifest_fallback_reads_cargo_toml(tmp_path: Path) -> None:
    """Without captured metadata the manifest on disk is read."""
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text(MANIFEST, encoding="utf8")
    metadata = read_manifest_metadata(manifest)
    if metadata is None or "docs" not in metadata:
        pytest.fail("The whole metadata table should be returned")
    package = PackageInfo(
        id=PackageId.for_path("app", "0.1.0", tmp_path), manifest_path=manifest
    )
    config = load_ignore_config(package)
    if config is None or config.development != frozenset({"proptest"}):
        pytest.fail(f"Unexpected ignore table {config}")


def test_invalid_manifest_is_rejected(tmp_path: Path) -> None:
    """Unparseable manifests raise ManifestMetadataError."""
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text("[package\nname = ", encoding="utf8")
    with pytest.raises(ManifestMetadataError):
        read_manifest_metadata(manifest)


def test_only_test_profile_is_supported() -> None:
    """Other profiles are rejected at option validation."""
    if AnalysisOptions(profile="test").profile != "test":
        pytest.fail("The test profile should be accepted")
    with pytest.raises(ValidationError, match="only `test` is currently supported"):
        AnalysisOptions(profile="bench")


@pytest.mark.parametrize("jobs", ["abc", "4x", ""])
def test_jobs_must_be_an_integer(jobs: str) -> None:
    """Non-numeric job counts fail option validation."""
    with pytest.raises(ValidationError, match="for `--jobs`"):
        AnalysisOptions(jobs=jobs)


def test_integer_jobs_are_forwarded() -> None:
    """A numeric job count reaches `cargo check` unchanged."""
    args = AnalysisOptions(jobs="4").check_args()
    if args[args.index("--jobs") + 1] != "4":
        pytest.fail(f"Unexpected check args {args}")


def test_check_args_forward_cargo_flags(tmp_path: Path) -> None:
    """Selected flags are forwarded to `cargo check`."""
    options = AnalysisOptions(
        packages=("app",),
        workspace=True,
        exclude=("tools",),
        bin=("cli",),
        features=("serde", "tracing"),
        release=True,
        manifest_path=tmp_path / "Cargo.toml",
        locked=True,
        verbose=3,
    )
    expected = [
        "check", "--message-format", "short",
        "--package", "app", "--workspace", "--exclude", "tools",
        "--bin", "cli", "--release",
        "--features", "serde tracing",
        "--manifest-path", str(tmp_path / "Cargo.toml"), "--locked",
        "-vv",
    ]
    if options.check_args() != expected:
        pytest.fail(f"Unexpected check args {options.check_args()}")
