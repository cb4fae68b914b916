"""
Configuration models used by the udeps CLI and analysis phases.

These Pydantic models validate the data that crosses a process boundary: the
per-package ignore table stored in manifest metadata, the run options accepted
on the command line, and the executables used to drive Cargo.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from udeps.models.package import DependencyKind

SUPPORTED_PROFILES = frozenset({"test"})


class OutputKind(StrEnum):
    """Report formats selectable with `--output`."""

    HUMAN = "human"
    JSON = "json"


class IgnoreConfig(BaseModel):
    """Dependencies a package owner has opted out of reporting, per kind."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    normal: frozenset[str] = Field(default_factory=frozenset)
    development: frozenset[str] = Field(default_factory=frozenset)
    build: frozenset[str] = Field(default_factory=frozenset)

    def contains(self, kind: DependencyKind, name_in_toml: str) -> bool:
        """
        Return True when `name_in_toml` is ignored for `kind`.

        Parameters
        ----------
        kind
            Dependency kind of the candidate.
        name_in_toml
            Declared dependency name.

        Returns
        -------
        bool
            Whether the candidate is suppressed.
        """
        return name_in_toml in getattr(self, kind.value)


class CargoUdepsMetadata(BaseModel):
    """The `[package.metadata.cargo-udeps]` table."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    ignore: IgnoreConfig = Field(default_factory=IgnoreConfig)


class PackageMetadata(BaseModel):
    """
    Package-level `[package.metadata]` table.

    Only the `cargo-udeps` key is interpreted; other tools' keys pass through.
    """

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    cargo_udeps: CargoUdepsMetadata = Field(
        default_factory=CargoUdepsMetadata,
        alias="cargo-udeps",
    )


class ToolsConfig(BaseModel):
    """Executables used to drive the resolver, the build, and the compiler."""

    cargo_bin: str = Field("cargo", description="Path to the cargo binary")
    rustc_bin: str = Field("rustc", description="Path to the rustc binary")
    default_timeout_s: float | None = Field(
        None,
        description="Timeout (seconds) for resolver/build invocations; None waits forever",
    )

    @classmethod
    def default(cls) -> ToolsConfig:
        """
        Return a configuration populated with baked-in defaults.

        Returns
        -------
        ToolsConfig
            Configuration honouring `$CARGO` and `$RUSTC` when set.
        """
        overrides: dict[str, str] = {}
        if os.environ.get("CARGO"):
            overrides["cargo_bin"] = os.environ["CARGO"]
        if os.environ.get("RUSTC"):
            overrides["rustc_bin"] = os.environ["RUSTC"]
        return cls.model_validate(overrides)

    def resolve_path(self, tool: str) -> str:
        """
        Return the configured executable path for a tool or fall back to its name.

        Parameters
        ----------
        tool
            Tool identifier.

        Returns
        -------
        str
            Executable path or name to invoke.
        """
        mapping = {"cargo": self.cargo_bin, "rustc": self.rustc_bin}
        return mapping.get(str(tool), str(tool))

    def build_env(self, *, base_env: Mapping[str, str] | None = None) -> dict[str, str]:
        """
        Construct the environment for a tool invocation.

        Parameters
        ----------
        base_env
            Overrides merged on top of the current process environment.

        Returns
        -------
        dict[str, str]
            Environment variables to supply to the subprocess call.
        """
        env = dict(os.environ)
        env.update(base_env or {})
        return env


class AnalysisOptions(BaseModel):
    """
    Run options mirroring the `cargo check` flags udeps forwards.

    Target-selection flags also decide which advisory notes accompany a
    failing outcome.
    """

    model_config = ConfigDict(frozen=True)

    output: OutputKind = OutputKind.HUMAN
    quiet: bool = False
    verbose: int = 0
    packages: tuple[str, ...] = ()
    workspace: bool = False
    exclude: tuple[str, ...] = ()
    jobs: str | None = None
    lib: bool = False
    bins: bool = False
    bin: tuple[str, ...] = ()
    examples: bool = False
    example: tuple[str, ...] = ()
    tests: bool = False
    test: tuple[str, ...] = ()
    benches: bool = False
    bench: tuple[str, ...] = ()
    all_targets: bool = False
    release: bool = False
    profile: str | None = None
    features: tuple[str, ...] = ()
    all_features: bool = False
    no_default_features: bool = False
    target: str | None = None
    target_dir: Path | None = None
    manifest_path: Path | None = None
    frozen: bool = False
    locked: bool = False
    offline: bool = False

    @field_validator("profile")
    @classmethod
    def _known_profile(cls, v: str | None) -> str | None:
        if v is not None and v not in SUPPORTED_PROFILES:
            message = f"unknown profile: `{v}`, only `test` is currently supported"
            raise ValueError(message)
        return v

    @field_validator("jobs")
    @classmethod
    def _integer_jobs(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            int(v)
        except ValueError:
            message = f"invalid value `{v}` for `--jobs`: must be an integer"
            raise ValueError(message) from None
        return v.strip()

    @field_validator("target_dir", "manifest_path", mode="before")
    @classmethod
    def _expand_user(cls, v: Path | str | None) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser()

    @property
    def has_target_selection(self) -> bool:
        """Return True when any flag narrows or widens the checked targets."""
        return any(
            (
                self.lib,
                self.bins,
                self.examples,
                self.tests,
                self.benches,
                self.bin,
                self.example,
                self.test,
                self.bench,
                self.all_targets,
            )
        )

    def metadata_args(self) -> list[str]:
        """
        Build the `cargo metadata` argument vector for these options.

        Returns
        -------
        list[str]
            Arguments following the `cargo` executable.
        """
        args = ["metadata", "--format-version", "1"]
        args.extend(self._feature_args())
        args.extend(self._manifest_args())
        return args

    def check_args(self) -> list[str]:
        """
        Build the `cargo check` argument vector for these options.

        Returns
        -------
        list[str]
            Arguments following the `cargo` executable.
        """
        args = ["check", "--message-format", "short"]
        for spec in self.packages:
            args.extend(["--package", spec])
        if self.workspace:
            args.append("--workspace")
        for spec in self.exclude:
            args.extend(["--exclude", spec])
        if self.jobs is not None:
            args.extend(["--jobs", self.jobs])
        args.extend(self._target_args())
        if self.release:
            args.append("--release")
        if self.profile is not None:
            args.extend(["--profile", self.profile])
        args.extend(self._feature_args())
        if self.target is not None:
            args.extend(["--target", self.target])
        if self.target_dir is not None:
            args.extend(["--target-dir", str(self.target_dir)])
        args.extend(self._manifest_args())
        if self.verbose:
            args.append("-" + "v" * min(self.verbose, 2))
        if self.quiet:
            args.append("--quiet")
        return args

    def _target_args(self) -> list[str]:
        args: list[str] = []
        flags = {
            "--lib": self.lib,
            "--bins": self.bins,
            "--examples": self.examples,
            "--tests": self.tests,
            "--benches": self.benches,
            "--all-targets": self.all_targets,
        }
        args.extend(flag for flag, enabled in flags.items() if enabled)
        for flag, names in (
            ("--bin", self.bin),
            ("--example", self.example),
            ("--test", self.test),
            ("--bench", self.bench),
        ):
            for name in names:
                args.extend([flag, name])
        return args

    def _feature_args(self) -> list[str]:
        args: list[str] = []
        if self.features:
            args.extend(["--features", " ".join(self.features)])
        if self.all_features:
            args.append("--all-features")
        if self.no_default_features:
            args.append("--no-default-features")
        return args

    def _manifest_args(self) -> list[str]:
        args: list[str] = []
        if self.manifest_path is not None:
            args.extend(["--manifest-path", str(self.manifest_path)])
        if self.frozen:
            args.append("--frozen")
        if self.locked:
            args.append("--locked")
        if self.offline:
            args.append("--offline")
        return args
