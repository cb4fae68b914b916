"""Tests for the Cargo driver and offline invocation replay."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

import pytest

from tests._helpers.builders import MetadataBuilder, make_record, rustc_args
from tests._helpers.fakes import FakeToolRunner, failed_result, ok_result
from udeps.config.models import AnalysisOptions
from udeps.errors import BuildError, InvalidArgumentError
from udeps.ingestion.cargo_driver import CargoDriver, load_unit_invocations, replay_invocations
from udeps.ingestion.recorder import InvocationRecorder
from udeps.ingestion.tool_runner import ToolExecutionError, ToolName, ToolRunResult
from udeps.ingestion.wrapper import CARGO_EXE_ENV, RECORD_SUFFIX, SPOOL_DIR_ENV


def _workspace(builder: MetadataBuilder) -> tuple[str, str]:
    app = builder.add_package("app", member=True)
    serde = builder.add_package("serde", registry=True)
    builder.add_dependency(app, serde)
    return app, serde


def test_resolve_runs_cargo_metadata(metadata_builder: MetadataBuilder) -> None:
    """resolve() loads the graph from `cargo metadata` output."""
    app, _ = _workspace(metadata_builder)
    document = json.dumps(metadata_builder.build())
    runner = FakeToolRunner(
        handlers={"metadata": lambda args, env: ok_result(ToolName.CARGO, args, document)}
    )
    driver = CargoDriver(AnalysisOptions(all_features=True), runner=runner)
    graph = driver.resolve()
    if [info.id for info in graph.members()] != [metadata_builder.package_id(app)]:
        pytest.fail("Resolved graph should contain the member")
    if runner.calls[0].args != ("metadata", "--format-version", "1", "--all-features"):
        pytest.fail(f"Unexpected metadata call {runner.calls[0].args}")


def test_resolve_failure_is_a_build_error() -> None:
    """A failing resolver surfaces as BuildError with cargo's stderr."""
    runner = FakeToolRunner(
        handlers={
            "metadata": lambda args, env: failed_result(
                ToolName.CARGO, args, "error: could not find `Cargo.toml`"
            )
        }
    )
    with pytest.raises(BuildError, match="could not find `Cargo.toml`"):
        CargoDriver(AnalysisOptions(), runner=runner).resolve()


def test_build_collects_spooled_records(
    metadata_builder: MetadataBuilder, out_dir: Path
) -> None:
    """build() cleans local packages, runs the check, and drains spooled records."""
    app, _ = _workspace(metadata_builder)
    graph = metadata_builder.graph()
    app_id = metadata_builder.package_id(app)

    def check(args: Sequence[str], env: Mapping[str, str]) -> ToolRunResult | None:
        record = make_record(app_id, "app", out_dir=out_dir)
        spool = Path(env[SPOOL_DIR_ENV])
        (spool / f"unit{RECORD_SUFFIX}").write_text(json.dumps(record.to_dict()), encoding="utf8")
        return None

    runner = FakeToolRunner(handlers={"check": check})
    driver = CargoDriver(
        AnalysisOptions(all_targets=True),
        runner=runner,
        wrapper_executable="/opt/udeps/bin/udeps-rustc-wrapper",
    )
    records = driver.build(graph, InvocationRecorder(cargo_exe="/opt/toolchain/bin/cargo"))

    if [record.crate_name for record in records] != ["app"]:
        pytest.fail(f"Unexpected records {records}")
    clean = runner.calls_for("clean")
    if len(clean) != 1 or clean[0].args != ("clean", "--package", "app"):
        pytest.fail(f"Only local packages should be cleaned, got {clean}")
    check_call = runner.calls_for("check")[0]
    if "--all-targets" not in check_call.args:
        pytest.fail("Target selection should be forwarded to cargo check")
    if check_call.env.get("RUSTC_WRAPPER") != "/opt/udeps/bin/udeps-rustc-wrapper":
        pytest.fail("The compiler wrapper should be installed")
    if check_call.env.get(CARGO_EXE_ENV) != "/opt/toolchain/bin/cargo":
        pytest.fail("The cargo executable should be announced to the wrapper")


def test_failed_build_is_a_build_error(metadata_builder: MetadataBuilder) -> None:
    """A failing check aborts the run."""
    _workspace(metadata_builder)
    runner = FakeToolRunner(
        handlers={"check": lambda args, env: failed_result(ToolName.CARGO, args, "error[E0425]")}
    )
    driver = CargoDriver(AnalysisOptions(), runner=runner, wrapper_executable="/bin/wrapper")
    with pytest.raises(BuildError, match="E0425"):
        driver.build(metadata_builder.graph(), InvocationRecorder())


def _timed_out(args: Sequence[str], env: Mapping[str, str]) -> ToolRunResult:
    raise ToolExecutionError(
        ToolRunResult(
            tool=ToolName.CARGO,
            args=tuple(args),
            returncode=-9,
            stdout="",
            stderr="timed out",
            duration_s=30.0,
        )
    )


@pytest.mark.parametrize("subcommand", ["metadata", "check"])
def test_timed_out_cargo_is_a_build_error(
    metadata_builder: MetadataBuilder, subcommand: str
) -> None:
    """A cargo call that never completes surfaces as BuildError, not a crash."""
    _workspace(metadata_builder)
    runner = FakeToolRunner(handlers={subcommand: _timed_out})
    driver = CargoDriver(AnalysisOptions(), runner=runner, wrapper_executable="/bin/wrapper")
    with pytest.raises(BuildError, match="timed out") as excinfo:
        if subcommand == "metadata":
            driver.resolve()
        else:
            driver.build(metadata_builder.graph(), InvocationRecorder())
    if excinfo.value.problem_detail.code != "build.aborted":
        pytest.fail(f"Unexpected problem {excinfo.value.problem_detail}")


def test_cargo_exe_falls_back_with_warning(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    """Without $CARGO the resolved cargo path is used and a warning is logged."""
    monkeypatch.delenv("CARGO", raising=False)
    driver = CargoDriver(AnalysisOptions(), runner=FakeToolRunner(executable="/usr/local/bin/cargo"))
    with caplog.at_level(logging.WARNING, logger="udeps.ingestion.cargo_driver"):
        cargo_exe = driver.cargo_exe()
    if cargo_exe != "/usr/local/bin/cargo":
        pytest.fail(f"Unexpected cargo executable {cargo_exe}")
    if "Couldn't find $CARGO environment variable" not in caplog.text:
        pytest.fail("A warning about the missing $CARGO should be logged")


def test_cargo_exe_prefers_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """$CARGO wins over path lookup."""
    monkeypatch.setenv("CARGO", "/from/env/cargo")
    driver = CargoDriver(AnalysisOptions(), runner=FakeToolRunner())
    if driver.cargo_exe() != "/from/env/cargo":
        pytest.fail("$CARGO should be used as is")


def test_replay_invocations_records_local_units(tmp_path: Path, out_dir: Path) -> None:
    """Replayed invocations go through the recorder from a worker pool."""
    local_dir = tmp_path / "ws" / "app"
    lines = [
        {
            "package_id": {
                "name": "app",
                "version": "0.1.0",
                "source": f"path+{local_dir.resolve().as_uri()}",
            },
            "args": rustc_args("app", out_dir=out_dir),
        },
        {
            "package_id": {
                "name": "serde",
                "version": "1.0.0",
                "source": "registry+https://github.com/rust-lang/crates.io-index",
            },
            "args": rustc_args("serde", out_dir=out_dir, cap_lints=True),
        },
    ]
    path = tmp_path / "invocations.jsonl"
    path.write_text("\n".join(json.dumps(line) for line in lines) + "\n\n", encoding="utf8")

    units = load_unit_invocations(path)
    if [unit.is_local for unit in units] != [True, False]:
        pytest.fail("Locality should default to the package source")
    records = replay_invocations(units, InvocationRecorder(), jobs=2)
    if [record.crate_name for record in records] != ["app"]:
        pytest.fail(f"Only local units should be recorded, got {records}")


def test_malformed_invocation_log_is_rejected(tmp_path: Path) -> None:
    """Lines that are not invocation objects raise InvalidArgumentError."""
    path = tmp_path / "invocations.jsonl"
    path.write_text('{"args": []}\n', encoding="utf8")
    with pytest.raises(InvalidArgumentError, match="invocations.jsonl:1"):
        load_unit_invocations(path)
