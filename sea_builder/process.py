"""External process runner.

Every toolchain step (esbuild, node, rcedit, postject) goes through
:class:`ProcessRunner`. The runner blocks until the child exits and returns a
completed :class:`ProcessResult`; the pipeline never consumes partial output.
"""

from dataclasses import dataclass
import logging
import pathlib
import shlex
import subprocess


class ProcessFailure(RuntimeError):
    """Base class for external process failures."""


class ProcessError(ProcessFailure):
    """Raised when an external process exits with a non-zero status.

    :ivar command_line: The command that was run, shell-quoted.
    :ivar exit_code: Process exit status.
    :ivar stdout: Captured standard output.
    :ivar stderr: Captured standard error.
    """

    def __init__(self, *, command_line: str, exit_code: int, stdout: str, stderr: str) -> None:
        self.command_line: str = command_line
        self.exit_code: int = exit_code
        self.stdout: str = stdout
        self.stderr: str = stderr
        super().__init__(
            f"{command_line} exited with code {exit_code}\n"
            f"STDOUT:\n{stdout}\n"
            f"STDERR:\n{stderr}"
        )


class ProcessSpawnError(ProcessFailure):
    """Raised when an external process cannot be started at all."""

    def __init__(self, *, command_line: str, reason: str) -> None:
        self.command_line: str = command_line
        self.reason: str = reason
        super().__init__(f"Could not start {command_line}: {reason}")


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Completed process.

    :ivar exit_code: Process exit status.
    :ivar stdout: Captured standard output (decoded).
    :ivar stderr: Captured standard error (decoded).
    """

    exit_code: int
    stdout: str
    stderr: str


def _decode(data: bytes | None) -> str:
    """Decode captured process output.

    :param data: Raw bytes, or ``None`` when nothing was captured.
    :returns: Text, with undecodable bytes replaced.
    """

    if data is None:
        return ""
    return data.decode("utf-8", errors="replace")


class ProcessRunner:
    """Run external commands and buffer their output to completion."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        if logger is None:
            logger = logging.getLogger("sea_builder")
        self._logger: logging.Logger = logger

    def run(
        self,
        command: str,
        args: list[str],
        *,
        cwd: pathlib.Path | None = None,
    ) -> ProcessResult:
        """Run ``command`` with ``args`` and wait for it to exit.

        :param command: Executable name or path.
        :param args: Arguments passed after the command.
        :param cwd: Optional working directory for the child.
        :returns: The completed process result.
        :raises ProcessSpawnError: If the process could not be started.
        :raises ProcessError: If the process exited non-zero.
        """

        cmd: list[str] = [command, *args]
        command_line: str = shlex.join(cmd)
        if self._logger.isEnabledFor(logging.DEBUG) is True:
            where: str = f" (cwd={cwd})" if cwd is not None else ""
            self._logger.debug(f"sea-builder: running {command_line}{where}")

        try:
            proc = subprocess.run(cmd, cwd=cwd, capture_output=True, check=False)
        except OSError as e:
            raise ProcessSpawnError(command_line=command_line, reason=str(e)) from e

        result: ProcessResult = ProcessResult(
            exit_code=proc.returncode,
            stdout=_decode(proc.stdout),
            stderr=_decode(proc.stderr),
        )
        if result.exit_code != 0:
            raise ProcessError(
                command_line=command_line,
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result
