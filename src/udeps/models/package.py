"""Package identity and dependency edge primitives shared across phases."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

PATH_SOURCE_PREFIX = "path+"


class DependencyKind(StrEnum):
    """Build phase a declared dependency applies to."""

    NORMAL = "normal"
    DEVELOPMENT = "development"
    BUILD = "build"

    @classmethod
    def from_cargo(cls, kind: str | None) -> DependencyKind:
        """
        Map the `kind` field used by `cargo metadata` onto a DependencyKind.

        Parameters
        ----------
        kind
            `None` for normal dependencies, otherwise "dev" or "build".

        Returns
        -------
        DependencyKind
            Matching enum member.

        Raises
        ------
        ValueError
            When the kind is not one Cargo emits.
        """
        if kind is None or kind == "normal":
            return cls.NORMAL
        if kind in {"dev", "development"}:
            return cls.DEVELOPMENT
        if kind == "build":
            return cls.BUILD
        message = f"Unknown dependency kind {kind!r}"
        raise ValueError(message)

    @property
    def section_prefix(self) -> str:
        """Manifest section prefix (`dev-`, `build-`) used in reports."""
        return {
            DependencyKind.NORMAL: "",
            DependencyKind.DEVELOPMENT: "dev-",
            DependencyKind.BUILD: "build-",
        }[self]


ALL_KINDS: tuple[DependencyKind, ...] = (
    DependencyKind.NORMAL,
    DependencyKind.DEVELOPMENT,
    DependencyKind.BUILD,
)


@dataclass(frozen=True, order=True)
class PackageId:
    """
    Identity of one resolved package.

    Attributes
    ----------
    name : str
        Package name as published.
    version : str
        Resolved semver version.
    source : str
        Source URL; packages on the local filesystem use a `path+file://` URL.
    """

    name: str
    version: str
    source: str

    @classmethod
    def for_path(cls, name: str, version: str, package_dir: Path) -> PackageId:
        """Build the identity of a package that lives on the local filesystem."""
        return cls(name=name, version=version, source=f"path+{package_dir.resolve().as_uri()}")

    @property
    def is_path(self) -> bool:
        """Return True when the package source is the local filesystem."""
        return self.source.startswith(PATH_SOURCE_PREFIX)

    def __str__(self) -> str:
        return f"{self.name} {self.version} ({self.source})"


@dataclass(frozen=True)
class PackageInfo:
    """
    Resolved package along with the fields the analysis reads.

    `lib_name` is the name of the package's library target, or None for
    packages that only ship binaries.
    """

    id: PackageId
    manifest_path: Path
    lib_name: str | None = None
    metadata: dict[str, object] = field(default_factory=dict)

    @property
    def has_library(self) -> bool:
        """Return True when the package exposes a library target."""
        return self.lib_name is not None


@dataclass(frozen=True)
class DependencyEdge:
    """
    Declared dependency from one package onto another.

    Attributes
    ----------
    source : PackageId
        Package that declares the dependency.
    target : PackageId
        Package the dependency resolved to.
    kind : DependencyKind
        Build phase the declaration applies to.
    name_in_toml : str
        Key used in the declaring manifest (the rename when one is given).
    alias : str
        Extern crate name the compiler receives for this dependency.
    target_lib_name : str | None
        Library target name of `target`, None when it has no library.
    """

    source: PackageId
    target: PackageId
    kind: DependencyKind
    name_in_toml: str
    alias: str
    target_lib_name: str | None = None
