"""CLI entrypoint: `cargo udeps` finds unused dependencies in a Cargo workspace."""

from __future__ import annotations

import argparse
import importlib.metadata
import logging
import sys
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError

from udeps.analytics.report import write_outcome
from udeps.config.models import AnalysisOptions, OutputKind
from udeps.errors import InvalidArgumentError, ProblemError, log_problem, problem
from udeps.graphs.resolved_graph import ResolvedGraph
from udeps.ingestion.cargo_driver import CargoDriver, load_unit_invocations, replay_invocations
from udeps.ingestion.invocation import InvocationRecord
from udeps.ingestion.recorder import InvocationRecorder
from udeps.orchestration.pipeline import EXIT_ERROR, analyze

LOG = logging.getLogger("udeps.cli")

SUBCOMMAND = "udeps"

AFTER_HELP = """\
If the `--package` argument is given, then SPEC is a package ID specification
which indicates which package should be built. If it is not given, then the
current package is built. For more information on SPEC and its format, see the
`cargo help pkgid` command.

All packages in the workspace are checked if the `--workspace` flag is supplied. The
`--workspace` flag is automatically assumed for a virtual manifest.
Note that `--exclude` has to be specified in conjunction with the `--workspace` flag.

Compilation can be configured via the use of profiles which are configured in
the manifest. The default profile for this command is `dev`, but passing
the `--release` flag will use the `release` profile instead.

The `--profile test` flag can be used to check unit tests with the
`#[cfg(test)]` attribute.
"""


# ---------------------------------------------------------------------------
# Argument parsing / logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int, *, quiet: bool = False) -> None:
    """
    Configure logging based on -v/--verbose count.

    0 -> WARNING, 1 -> INFO, 2+ -> DEBUG; --quiet -> ERROR.
    """
    if quiet:
        level = logging.ERROR
    elif verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _add_package_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-p",
        "--package",
        dest="packages",
        action="append",
        default=[],
        metavar="SPEC",
        help="[cargo] Package(s) to check",
    )
    p.add_argument("--all", action="store_true", help="[cargo] Alias for --workspace (deprecated)")
    p.add_argument("--workspace", action="store_true", help="[cargo] Check all packages in the workspace")
    p.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="SPEC",
        help="[cargo] Exclude packages from the check",
    )
    p.add_argument("-j", "--jobs", metavar="N", help="[cargo] Number of parallel jobs, defaults to # of CPUs")


def _add_target_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--lib", action="store_true", help="[cargo] Check only this package's library")
    for singular, plural, noun in (
        ("bin", "bins", "binary"),
        ("example", "examples", "example"),
        ("test", "tests", "test target"),
        ("bench", "benches", "bench target"),
    ):
        p.add_argument(
            f"--{singular}",
            action="append",
            default=[],
            metavar="NAME",
            help=f"[cargo] Check only the specified {noun}",
        )
        p.add_argument(f"--{plural}", action="store_true", help=f"[cargo] Check all {plural}")
    p.add_argument("--all-targets", action="store_true", help="[cargo] Check all targets")


def _add_build_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--release",
        action="store_true",
        help="[cargo] Check artifacts in release mode, with optimizations",
    )
    p.add_argument("--profile", metavar="PROFILE-NAME", help="[cargo] Check artifacts with the specified profile")
    p.add_argument(
        "--features",
        action="append",
        default=[],
        metavar="FEATURES",
        help="[cargo] Space-separated list of features to activate",
    )
    p.add_argument("--all-features", action="store_true", help="[cargo] Activate all available features")
    p.add_argument(
        "--no-default-features",
        action="store_true",
        help="[cargo] Do not activate the `default` feature",
    )
    p.add_argument("--target", metavar="TRIPLE", help="[cargo] Check for the target triple")
    p.add_argument(
        "--target-dir",
        type=Path,
        metavar="DIRECTORY",
        help="[cargo] Directory for all generated artifacts",
    )
    p.add_argument("--manifest-path", type=Path, metavar="PATH", help="[cargo] Path to Cargo.toml")
    p.add_argument("--frozen", action="store_true", help="[cargo] Require Cargo.lock and cache are up to date")
    p.add_argument("--locked", action="store_true", help="[cargo] Require Cargo.lock is up to date")
    p.add_argument("--offline", action="store_true", help="[cargo] Run without accessing the network")


def _add_analysis_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--output",
        choices=[kind.value for kind in OutputKind],
        default=OutputKind.HUMAN.value,
        help="Output format",
    )
    p.add_argument(
        "--metadata-file",
        type=Path,
        metavar="PATH",
        help="Load the resolved graph from a saved `cargo metadata` document instead of running cargo",
    )
    p.add_argument(
        "--invocations",
        type=Path,
        metavar="PATH",
        help="Replay compiler invocations from a JSON-lines file instead of building",
    )


def _version() -> str:
    try:
        return importlib.metadata.version("udeps")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cargo udeps",
        description="Find unused dependencies in Cargo.toml",
        epilog=AFTER_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="[cargo] No output printed to stdout")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="[cargo] Use verbose output (-vv very verbose/build.rs output)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_version()}")
    _add_package_args(parser)
    _add_target_args(parser)
    _add_build_args(parser)
    _add_analysis_args(parser)
    return parser


def _options_from_args(args: argparse.Namespace) -> AnalysisOptions:
    features = tuple(f for group in args.features for f in group.split())
    try:
        return AnalysisOptions(
            output=OutputKind(args.output),
            quiet=args.quiet,
            verbose=args.verbose,
            packages=tuple(args.packages),
            workspace=args.workspace or args.all,
            exclude=tuple(args.exclude),
            jobs=args.jobs,
            lib=args.lib,
            bins=args.bins,
            bin=tuple(args.bin),
            examples=args.examples,
            example=tuple(args.example),
            tests=args.tests,
            test=tuple(args.test),
            benches=args.benches,
            bench=tuple(args.bench),
            all_targets=args.all_targets,
            release=args.release,
            profile=args.profile,
            features=features,
            all_features=args.all_features,
            no_default_features=args.no_default_features,
            target=args.target,
            target_dir=args.target_dir,
            manifest_path=args.manifest_path,
            frozen=args.frozen,
            locked=args.locked,
            offline=args.offline,
        )
    except ValidationError as exc:
        details = "; ".join(str(err["msg"]).removeprefix("Value error, ") for err in exc.errors())
        raise InvalidArgumentError(
            problem(code="cli.invalid_option", title="Invalid option", detail=details)
        ) from exc


def _warn_verbose_commands() -> None:
    LOG.warning('currently verbose command informations ("Running `..`") are not correct.')
    LOG.warning("for example, `cargo-udeps` does these modifications:")
    LOG.warning("- changes `$CARGO` to the value given from `cargo`")
    LOG.warning("- sets `$RUST_SAVE_ANALYSIS_CONFIG` (for crates on the local filesystem)")
    LOG.warning("- adds `-Z save-analysis` (〃)")


def _jobs(options: AnalysisOptions) -> int | None:
    if options.jobs is None:
        return None
    return max(int(options.jobs), 1)


def _collect(
    args: argparse.Namespace,
    options: AnalysisOptions,
) -> tuple[ResolvedGraph, list[InvocationRecord]]:
    driver = CargoDriver(options)
    if args.metadata_file is not None:
        graph = ResolvedGraph.from_json_file(args.metadata_file)
    else:
        graph = driver.resolve()
    if args.invocations is not None:
        units = load_unit_invocations(args.invocations)
        records = replay_invocations(units, InvocationRecorder(), jobs=_jobs(options))
    else:
        recorder = InvocationRecorder(cargo_exe=driver.cargo_exe())
        records = driver.build(graph, recorder)
    return graph, records


def main(argv: Iterable[str] | None = None) -> int:
    """
    CLI entrypoint for `cargo udeps` and `cargo-udeps`.

    Parameters
    ----------
    argv:
        Optional argument list (defaults to sys.argv).

    Returns
    -------
    int
        0 when every dependency is used, 1 when unused ones were found, 2 on error.
    """
    raw = list(argv) if argv is not None else sys.argv[1:]
    # `cargo udeps ...` runs `cargo-udeps udeps ...`
    if raw and raw[0] == SUBCOMMAND:
        raw = raw[1:]
    parser = _make_parser()
    args = parser.parse_args(raw)

    _setup_logging(args.verbose, quiet=args.quiet)

    try:
        options = _options_from_args(args)
        if options.verbose > 0:
            _warn_verbose_commands()
        graph, records = _collect(args, options)
        result = analyze(graph, records, options=options)
    except ProblemError as exc:
        if args.verbose:
            log_problem(LOG, exc.problem_detail)
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_ERROR

    write_outcome(result.outcome, options.output, sys.stdout)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
