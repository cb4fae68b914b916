"""Load per-package ignore configuration from manifest metadata."""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path

from pydantic import ValidationError

from udeps.config.models import IgnoreConfig, PackageMetadata
from udeps.errors import ManifestMetadataError, problem
from udeps.models.package import PackageInfo

log = logging.getLogger(__name__)

METADATA_KEY = "cargo-udeps"


def parse_package_metadata(
    metadata: Mapping[str, object] | None,
    *,
    manifest_path: Path | None = None,
) -> IgnoreConfig | None:
    """
    Extract the ignore table from a package's `[package.metadata]` mapping.

    Parameters
    ----------
    metadata
        Raw metadata table, or None when the package declares none.
    manifest_path
        Manifest the metadata came from, used in error messages.

    Returns
    -------
    IgnoreConfig | None
        Parsed ignore table, or None when the package has no metadata at all.

    Raises
    ------
    ManifestMetadataError
        When the `cargo-udeps` table does not match the expected shape.
    """
    if metadata is None:
        return None
    try:
        parsed = PackageMetadata.model_validate(dict(metadata))
    except ValidationError as exc:
        where = f" in {manifest_path}" if manifest_path is not None else ""
        raise ManifestMetadataError(
            problem(
                code="config.invalid_metadata",
                title="Invalid package metadata",
                detail=f"could not parse `package.metadata.{METADATA_KEY}`{where}: {exc}",
                extras={"manifest_path": str(manifest_path) if manifest_path else None},
            )
        ) from exc
    return parsed.cargo_udeps.ignore


def read_manifest_metadata(manifest_path: Path) -> dict[str, object] | None:
    """
    Read the `[package.metadata]` table straight from a `Cargo.toml`.

    Parameters
    ----------
    manifest_path
        Path to the manifest.

    Returns
    -------
    dict[str, object] | None
        The metadata table, or None when the manifest has none.

    Raises
    ------
    ManifestMetadataError
        When the manifest cannot be read or is not valid TOML.
    """
    try:
        data = tomllib.loads(manifest_path.read_text(encoding="utf8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ManifestMetadataError(
            problem(
                code="config.invalid_metadata",
                title="Unreadable manifest",
                detail=f"could not read {manifest_path}: {exc}",
                extras={"manifest_path": str(manifest_path)},
            )
        ) from exc
    package = data.get("package")
    if not isinstance(package, dict):
        return None
    metadata = package.get("metadata")
    return metadata if isinstance(metadata, dict) else None


def load_ignore_config(package: PackageInfo) -> IgnoreConfig | None:
    """
    Return the ignore table for a package.

    Metadata captured by the resolver wins; when it is absent and the manifest
    exists on disk, the manifest is read directly.

    Returns
    -------
    IgnoreConfig | None
        Ignore table, or None when the package declares no metadata.
    """
    metadata: Mapping[str, object] | None = package.metadata or None
    if metadata is None and package.manifest_path.is_file():
        log.debug("Reading package metadata from %s", package.manifest_path)
        metadata = read_manifest_metadata(package.manifest_path)
    return parse_package_metadata(metadata, manifest_path=package.manifest_path)
