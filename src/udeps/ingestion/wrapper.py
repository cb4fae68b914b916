"""Compiler wrapper Cargo runs in place of rustc (via `RUSTC_WRAPPER`).

Each invocation is announced to an :class:`InvocationRecorder`; records of
local units are spooled to disk for the driver process, and the compiler runs
with the recorder's extra arguments and environment.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from udeps.config.models import ToolsConfig
from udeps.errors import ProblemError, log_problem
from udeps.ingestion.invocation import InvocationRecord
from udeps.ingestion.recorder import InvocationRecorder, UnitInvocation
from udeps.ingestion.tool_runner import ToolName, ToolRunner
from udeps.models.package import PackageId

log = logging.getLogger("udeps.wrapper")

SPOOL_DIR_ENV = "UDEPS_SPOOL_DIR"
CARGO_EXE_ENV = "UDEPS_CARGO_EXE"
PACKAGES_INDEX = "packages.json"
RECORD_SUFFIX = ".record.json"
BUILD_SCRIPT_PREFIX = "build_script_"
PROBE_CRATE_NAME = "___"
EXIT_WRAPPER_ERROR = 101


@dataclass(frozen=True)
class WrapperContext:
    """Driver-provided context shared by every wrapper process of one build."""

    spool_dir: Path
    packages: Mapping[Path, PackageId]
    cargo_exe: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> WrapperContext | None:
        """
        Load the context announced by the driver.

        Returns
        -------
        WrapperContext | None
            Context, or None when the wrapper runs outside a udeps build.
        """
        spool = environ.get(SPOOL_DIR_ENV)
        if not spool:
            return None
        spool_dir = Path(spool)
        packages = read_packages_index(spool_dir / PACKAGES_INDEX)
        return cls(spool_dir=spool_dir, packages=packages, cargo_exe=environ.get(CARGO_EXE_ENV))

    def package_for(self, environ: Mapping[str, str]) -> PackageId | None:
        """Identify the package Cargo is compiling from its `CARGO_*` variables."""
        manifest_dir = environ.get("CARGO_MANIFEST_DIR")
        if manifest_dir is not None:
            found = self.packages.get(Path(manifest_dir).resolve())
            if found is not None:
                return found
        name = environ.get("CARGO_PKG_NAME")
        if name is None:
            return None
        return PackageId(name=name, version=environ.get("CARGO_PKG_VERSION", ""), source="unknown")

    def spool(self, record: InvocationRecord) -> Path:
        """Write a record to the spool directory and return its path."""
        path = self.spool_dir / f"{uuid4().hex}{RECORD_SUFFIX}"
        path.write_text(json.dumps(record.to_dict()), encoding="utf8")
        return path


def write_packages_index(path: Path, packages: Mapping[Path, PackageId]) -> None:
    """Persist the manifest-directory -> PackageId index for wrapper processes."""
    rows = [
        {
            "manifest_dir": str(manifest_dir),
            "name": package_id.name,
            "version": package_id.version,
            "source": package_id.source,
        }
        for manifest_dir, package_id in sorted(packages.items())
    ]
    path.write_text(json.dumps(rows), encoding="utf8")


def read_packages_index(path: Path) -> dict[Path, PackageId]:
    """
    Load the index written by :func:`write_packages_index`.

    Returns
    -------
    dict[Path, PackageId]
        Index keyed by resolved manifest directory; empty when missing.
    """
    if not path.is_file():
        return {}
    rows = json.loads(path.read_text(encoding="utf8"))
    return {
        Path(row["manifest_dir"]): PackageId(
            name=row["name"], version=row["version"], source=row["source"]
        )
        for row in rows
    }


def _crate_name(args: Sequence[str]) -> str | None:
    for flag, value in zip(args, args[1:], strict=False):
        if flag == "--crate-name":
            return value
    return None


def run_wrapped(
    rustc: str,
    args: Sequence[str],
    environ: Mapping[str, str],
    *,
    runner: ToolRunner | None = None,
) -> int:
    """
    Record one compiler invocation and run the compiler.

    Parameters
    ----------
    rustc
        Compiler executable Cargo asked the wrapper to run.
    args
        Compiler arguments.
    environ
        Environment of the wrapper process.
    runner
        Optional runner used to spawn the compiler.

    Returns
    -------
    int
        Compiler exit code.
    """
    runner = runner or ToolRunner(tools_config=ToolsConfig(rustc_bin=rustc))
    context = WrapperContext.from_env(environ)
    crate_name = _crate_name(args)
    package_id = context.package_for(environ) if context is not None else None
    extra_env: dict[str, str] = {}
    if context is not None and package_id is not None and crate_name not in {None, PROBE_CRATE_NAME}:
        recorder = InvocationRecorder(cargo_exe=context.cargo_exe)
        unit = UnitInvocation.for_package(
            package_id,
            args,
            custom_build=bool(crate_name and crate_name.startswith(BUILD_SCRIPT_PREFIX)),
        )
        decision = recorder.on_unit_observed(unit)
        for record in recorder.drain():
            context.spool(record)
        args = decision.apply(args)
        extra_env = decision.env

    result = runner.run(ToolName.RUSTC, args, env=extra_env)
    sys.stdout.write(result.stdout)
    sys.stderr.write(result.stderr)
    return result.returncode


def main(argv: Sequence[str] | None = None) -> int:
    """
    Entry point for `udeps-rustc-wrapper RUSTC ARGS...`.

    Returns
    -------
    int
        Process exit code.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        sys.stderr.write("usage: udeps-rustc-wrapper RUSTC [ARGS...]\n")
        return EXIT_WRAPPER_ERROR
    try:
        return run_wrapped(argv[0], argv[1:], os.environ)
    except ProblemError as exc:
        log_problem(log, exc.problem_detail)
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_WRAPPER_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
