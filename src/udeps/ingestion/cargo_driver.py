"""Drive `cargo metadata` and `cargo check` for one analysis run."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from udeps.config.models import AnalysisOptions
from udeps.errors import BuildError, InvalidArgumentError, problem
from udeps.graphs.resolved_graph import ResolvedGraph
from udeps.ingestion.invocation import InvocationRecord
from udeps.ingestion.recorder import InvocationRecorder, UnitInvocation
from udeps.ingestion.tool_runner import (
    ToolExecutionError,
    ToolName,
    ToolNotFoundError,
    ToolRunner,
    ToolRunResult,
)
from udeps.ingestion.wrapper import (
    CARGO_EXE_ENV,
    PACKAGES_INDEX,
    RECORD_SUFFIX,
    SPOOL_DIR_ENV,
    write_packages_index,
)
from udeps.models.package import PackageId

log = logging.getLogger(__name__)

WRAPPER_EXECUTABLE = "udeps-rustc-wrapper"


def _build_error(result: ToolRunResult, title: str) -> BuildError:
    return BuildError(
        problem(
            code="build.failed",
            title=title,
            detail=f"`cargo {' '.join(result.args)}` exited with {result.returncode}\n"
            f"{result.stderr.strip()}",
            extras={"returncode": result.returncode},
        )
    )


def _missing_tool_error(exc: ToolNotFoundError) -> BuildError:
    return BuildError(
        problem(
            code="build.tool_missing",
            title="Toolchain executable not found",
            detail=str(exc),
        )
    )


def _aborted_error(result: ToolRunResult) -> BuildError:
    return BuildError(
        problem(
            code="build.aborted",
            title="Cargo invocation aborted",
            detail=f"`cargo {' '.join(result.args)}` did not complete: {result.stderr.strip()}",
            extras={"returncode": result.returncode},
        )
    )


class CargoDriver:
    """Resolve the workspace and build it with the udeps compiler wrapper."""

    def __init__(
        self,
        options: AnalysisOptions,
        *,
        runner: ToolRunner | None = None,
        wrapper_executable: str | None = None,
    ) -> None:
        self.options = options
        self.runner = runner or ToolRunner()
        self.wrapper_executable = wrapper_executable

    def cargo_exe(self) -> str:
        """
        Return the Cargo executable exported to compiled units as `$CARGO`.

        Returns
        -------
        str
            Value of `$CARGO`, or the resolved `cargo` path with a warning.
        """
        from_env = os.environ.get("CARGO")
        if from_env:
            return from_env
        try:
            cargo_exe = self.runner.resolve_executable(ToolName.CARGO)
        except ToolNotFoundError as exc:
            raise _missing_tool_error(exc) from exc
        log.warning("Couldn't find $CARGO environment variable. Setting it to %s", cargo_exe)
        log.warning("`cargo-udeps` currently does not support basic Cargo commands such as `build`")
        return cargo_exe

    def resolve(self) -> ResolvedGraph:
        """
        Run `cargo metadata` and load the resolved graph.

        Returns
        -------
        ResolvedGraph
            Graph of every package in the workspace resolve.

        Raises
        ------
        BuildError
            When cargo fails.
        """
        result = self._run(self.options.metadata_args())
        if not result.ok:
            raise _build_error(result, "Dependency resolution failed")
        return ResolvedGraph.from_cargo_metadata(json.loads(result.stdout))

    def build(self, graph: ResolvedGraph, recorder: InvocationRecorder) -> list[InvocationRecord]:
        """
        Run `cargo check` through the compiler wrapper and collect records.

        Parameters
        ----------
        graph
            Resolved graph, used to map manifest directories to packages.
        recorder
            Recorder that receives every spooled local record.

        Returns
        -------
        list[InvocationRecord]
            Records of local units, drained from the recorder.

        Raises
        ------
        BuildError
            When the wrapper cannot be found or the build fails.
        """
        wrapper = self.wrapper_executable or shutil.which(WRAPPER_EXECUTABLE)
        if wrapper is None:
            raise BuildError(
                problem(
                    code="build.tool_missing",
                    title="Compiler wrapper not found",
                    detail=f"`{WRAPPER_EXECUTABLE}` is not on PATH; reinstall udeps",
                )
            )
        packages = {info.manifest_path.parent.resolve(): info.id for info in graph.packages()}
        self._force_rebuild(
            sorted({pid for pid in packages.values() if recorder.should_force_rebuild(pid)})
        )
        with tempfile.TemporaryDirectory(prefix="udeps-") as tmp:
            spool_dir = Path(tmp)
            write_packages_index(spool_dir / PACKAGES_INDEX, packages)
            env = {
                "RUSTC_WRAPPER": wrapper,
                SPOOL_DIR_ENV: str(spool_dir),
                # save-analysis is an unstable rustc flag
                "RUSTC_BOOTSTRAP": "1",
            }
            if recorder.cargo_exe is not None:
                env[CARGO_EXE_ENV] = recorder.cargo_exe
            result = self._run(self.options.check_args(), env=env)
            if result.stderr and not self.options.quiet:
                log.info("%s", result.stderr.rstrip())
            if not result.ok:
                raise _build_error(result, "Build failed")
            for path in sorted(spool_dir.glob(f"*{RECORD_SUFFIX}")):
                recorder.append(
                    InvocationRecord.from_dict(json.loads(path.read_text(encoding="utf8")))
                )
        return recorder.drain()

    def _force_rebuild(self, package_ids: Iterable[PackageId]) -> None:
        names = sorted({pid.name for pid in package_ids})
        if not names:
            return
        args = ["clean"]
        for name in names:
            args.extend(["--package", name])
        if self.options.target_dir is not None:
            args.extend(["--target-dir", str(self.options.target_dir)])
        if self.options.manifest_path is not None:
            args.extend(["--manifest-path", str(self.options.manifest_path)])
        if self.options.release:
            args.append("--release")
        log.debug("Forcing rebuild of local packages: %s", ", ".join(names))
        result = self._run(args)
        if not result.ok:
            raise _build_error(result, "Could not clean local packages")

    def _run(self, args: list[str], *, env: dict[str, str] | None = None) -> ToolRunResult:
        try:
            return self.runner.run(ToolName.CARGO, args, env=env)
        except ToolNotFoundError as exc:
            raise _missing_tool_error(exc) from exc
        except ToolExecutionError as exc:
            raise _aborted_error(exc.result) from exc


def load_unit_invocations(path: Path) -> list[UnitInvocation]:
    """
    Read recorded compiler invocations from a JSON-lines file.

    Each line holds `package_id` (name/version/source), `args`, and optionally
    `custom_build` and `is_local` (defaulting to the package source).

    Returns
    -------
    list[UnitInvocation]
        Invocations in file order.

    Raises
    ------
    InvalidArgumentError
        When the file cannot be read or a line is malformed.
    """
    try:
        lines = path.read_text(encoding="utf8").splitlines()
    except OSError as exc:
        raise InvalidArgumentError(
            problem(
                code="invocation.invalid_record",
                title="Unreadable invocation log",
                detail=f"could not read {path}: {exc}",
            )
        ) from exc
    units: list[UnitInvocation] = []
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            payload = json.loads(line)
            pid = payload["package_id"]
            package_id = PackageId(name=pid["name"], version=pid["version"], source=pid["source"])
            units.append(
                UnitInvocation(
                    package_id=package_id,
                    args=tuple(str(arg) for arg in payload["args"]),
                    custom_build=bool(payload.get("custom_build", False)),
                    is_local=bool(payload.get("is_local", package_id.is_path)),
                )
            )
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise InvalidArgumentError(
                problem(
                    code="invocation.invalid_record",
                    title="Malformed invocation log",
                    detail=f"{path}:{lineno}: could not decode invocation: {exc!r}",
                )
            ) from exc
    return units


def replay_invocations(
    units: Iterable[UnitInvocation],
    recorder: InvocationRecorder,
    *,
    jobs: int | None = None,
) -> list[InvocationRecord]:
    """
    Feed recorded invocations to the recorder from a pool of worker threads.

    Returns
    -------
    list[InvocationRecord]
        Records of local units, drained from the recorder.
    """
    with ThreadPoolExecutor(max_workers=jobs) as pool:
        # list() surfaces the first parsing error from any worker
        list(pool.map(recorder.on_unit_observed, units))
    return recorder.drain()
