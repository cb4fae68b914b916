"""Structured runners for the Cargo toolchain with typed results."""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from asyncio.subprocess import PIPE
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from udeps.config.models import ToolsConfig

log = logging.getLogger(__name__)


class ToolName(StrEnum):
    """External tools udeps invokes."""

    CARGO = "cargo"
    RUSTC = "rustc"


@dataclass(frozen=True)
class ToolRunResult:
    """Structured output from a tool invocation."""

    tool: ToolName
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    duration_s: float

    @property
    def ok(self) -> bool:
        """Return True when the tool completed successfully."""
        return self.returncode == 0


class ToolNotFoundError(RuntimeError):
    """Raised when a configured tool cannot be resolved on the host."""

    def __init__(self, tool: ToolName, configured_path: str) -> None:
        message = f"Tool {tool.value} not found (configured as {configured_path!r})"
        super().__init__(message)
        self.tool = tool
        self.configured_path = configured_path


class ToolExecutionError(RuntimeError):
    """Raised when a tool invocation fails irrecoverably (e.g., timeout)."""

    def __init__(self, result: ToolRunResult) -> None:
        message = (
            f"Tool {result.tool.value} failed (code={result.returncode})\n"
            f"Args: {result.args}\n"
            f"stderr: {result.stderr.strip()}"
        )
        super().__init__(message)
        self.result = result


class ToolRunner:
    """Run toolchain executables with environment overrides."""

    def __init__(
        self,
        *,
        tools_config: ToolsConfig | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.tools_config = tools_config or ToolsConfig.default()
        self.base_env = dict(base_env or {})

    @staticmethod
    def _coerce_tool(tool: ToolName | str) -> ToolName:
        if isinstance(tool, ToolName):
            return tool
        try:
            return ToolName(tool)
        except ValueError as exc:
            message = f"Unknown tool {tool!r}"
            raise ValueError(message) from exc

    def resolve_executable(self, tool: ToolName | str) -> str:
        """
        Return the absolute path of a tool executable.

        Returns
        -------
        str
            Path to the executable.

        Raises
        ------
        ToolNotFoundError
            When the executable cannot be located.
        """
        tool_enum = self._coerce_tool(tool)
        configured = self.tools_config.resolve_path(tool_enum)
        candidate_path = Path(configured)
        if candidate_path.is_file():
            return str(candidate_path)
        discovered = shutil.which(configured)
        if discovered is None:
            raise ToolNotFoundError(tool_enum, configured)
        return discovered

    async def run_async(
        self,
        tool: ToolName | str,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout_s: float | None = None,
    ) -> ToolRunResult:
        """
        Execute a tool asynchronously and capture stdout/stderr.

        Parameters
        ----------
        tool
            Tool identifier to invoke.
        args
            Argument vector following the executable.
        cwd
            Optional working directory.
        env
            Extra environment entries for this invocation.
        timeout_s
            Optional timeout in seconds; defaults to the configured timeout.

        Returns
        -------
        ToolRunResult
            Structured process result including stdout, stderr, and exit code.

        Raises
        ------
        ToolExecutionError
            When the subprocess times out.
        """
        tool_enum = self._coerce_tool(tool)
        executable = self.resolve_executable(tool_enum)
        cmd = [executable, *args]
        merged_env = self.tools_config.build_env(base_env={**self.base_env, **(env or {})})
        timeout = timeout_s if timeout_s is not None else self.tools_config.default_timeout_s
        log.debug("Running %s", " ".join(cmd))
        start_ts = time.perf_counter()

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd) if cwd is not None else None,
            stdout=PIPE,
            stderr=PIPE,
            env=merged_env,
        )
        try:
            stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError as exc:
            proc.kill()
            await proc.communicate()
            result = ToolRunResult(
                tool=tool_enum,
                args=tuple(args),
                returncode=proc.returncode or 1,
                stdout="",
                stderr="timed out",
                duration_s=time.perf_counter() - start_ts,
            )
            raise ToolExecutionError(result) from exc

        return ToolRunResult(
            tool=tool_enum,
            args=tuple(args),
            returncode=proc.returncode if proc.returncode is not None else 1,
            stdout=stdout_b.decode(errors="replace"),
            stderr=stderr_b.decode(errors="replace"),
            duration_s=time.perf_counter() - start_ts,
        )

    def run(
        self,
        tool: ToolName | str,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout_s: float | None = None,
    ) -> ToolRunResult:
        """
        Execute a tool synchronously.

        Returns
        -------
        ToolRunResult
            Structured result from :meth:`run_async`.
        """
        return asyncio.run(
            self.run_async(tool, args, cwd=cwd, env=env, timeout_s=timeout_s)
        )
