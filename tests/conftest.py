"""Shared fixtures: a fake Node toolchain that acts on the filesystem."""

import json
import logging
import pathlib

import pytest

from sea_builder.config import BuildConfig, Toolchain, artifact_paths
from sea_builder.process import ProcessError, ProcessResult, ProcessSpawnError
from sea_builder.target import Platform, RuntimeInfo

RUNTIME_BYTES: bytes = b"NODE-RUNTIME\n"
ENTRY_SOURCE: str = 'console.log("hello");\n'


def _resolve(arg: str, cwd: pathlib.Path | None) -> pathlib.Path:
    """Resolve a path argument the way a child process started in ``cwd`` would."""

    path = pathlib.Path(arg)
    if path.is_absolute() or cwd is None:
        return path
    return pathlib.Path(cwd) / path


class FakeRunner:
    """Stands in for :class:`ProcessRunner`.

    Each known command performs a tiny imitation of the real tool on disk, so
    the pipeline's file handling can be checked end to end.
    """

    def __init__(self, runtime: RuntimeInfo) -> None:
        self.runtime: RuntimeInfo = runtime
        self.calls: list[tuple[str, list[str], pathlib.Path | None]] = []
        self.failures: dict[str, Exception] = {}
        self.node_version: str = runtime.version
        self.bundle_writes: bool = True
        self.obfuscate_writes: bool = True
        self.blob_writes: bool = True
        self.blob_stdout: str = ""
        self.blob_stderr: str = ""

    def commands(self) -> list[str]:
        return [c[0] for c in self.calls]

    def run(self, command: str, args: list[str], *, cwd: pathlib.Path | None = None) -> ProcessResult:
        self.calls.append((command, list(args), cwd))
        failure: Exception | None = self.failures.get(command)
        if failure is not None:
            raise failure

        if args[0] == "-p":
            payload = {"version": self.node_version, "execPath": self.runtime.exec_path}
            return ProcessResult(exit_code=0, stdout=json.dumps(payload) + "\n", stderr="")
        if args[0] == "-e":
            return self._obfuscate(args, cwd)
        if args[0] == "--experimental-sea-config":
            return self._generate_blob(args, cwd)
        if command == "esbuild":
            return self._bundle(args, cwd)
        if command == "rcedit":
            return self._rcedit(args, cwd)
        if command == "postject":
            return self._postject(args, cwd)
        raise ProcessSpawnError(command_line=command, reason="not found")

    def _bundle(self, args: list[str], cwd: pathlib.Path | None) -> ProcessResult:
        if self.bundle_writes is True:
            entry = _resolve(args[0], cwd)
            outfile: str = next(a for a in args if a.startswith("--outfile="))
            out = _resolve(outfile.split("=", 1)[1], cwd)
            out.write_text("// bundled\n" + entry.read_text(encoding="utf-8"), encoding="utf-8")
        return ProcessResult(exit_code=0, stdout="", stderr="")

    def _obfuscate(self, args: list[str], cwd: pathlib.Path | None) -> ProcessResult:
        src = _resolve(args[3], cwd)
        dst = _resolve(args[4], cwd)
        json.loads(args[5])
        if self.obfuscate_writes is True:
            dst.write_text("obfuscated(" + src.read_text(encoding="utf-8") + ")", encoding="utf-8")
        return ProcessResult(exit_code=0, stdout="", stderr="")

    def _generate_blob(self, args: list[str], cwd: pathlib.Path | None) -> ProcessResult:
        assert cwd is not None
        descriptor = json.loads((cwd / args[1]).read_text(encoding="utf-8"))
        if self.blob_writes is True:
            main_bytes: bytes = (cwd / descriptor["main"]).read_bytes()
            (cwd / descriptor["output"]).write_bytes(b"BLOB:" + main_bytes)
        return ProcessResult(exit_code=0, stdout=self.blob_stdout, stderr=self.blob_stderr)

    def _rcedit(self, args: list[str], cwd: pathlib.Path | None) -> ProcessResult:
        exe = _resolve(args[0], cwd)
        icon = _resolve(args[2], cwd)
        with open(exe, "ab") as f:
            f.write(b"ICON:" + icon.read_bytes())
        return ProcessResult(exit_code=0, stdout="", stderr="")

    def _postject(self, args: list[str], cwd: pathlib.Path | None) -> ProcessResult:
        exe = _resolve(args[0], cwd)
        blob = _resolve(args[2], cwd)
        with open(exe, "ab") as f:
            f.write(b"SEA:" + blob.read_bytes())
        return ProcessResult(exit_code=0, stdout="Injection done!\n", stderr="")


def process_error(command: str, *, stdout: str = "", stderr: str = "boom") -> ProcessError:
    return ProcessError(command_line=command, exit_code=1, stdout=stdout, stderr=stderr)


@pytest.fixture()
def runtime(tmp_path: pathlib.Path) -> RuntimeInfo:
    node_dir: pathlib.Path = tmp_path / "runtime"
    node_dir.mkdir()
    node_bin: pathlib.Path = node_dir / "node"
    node_bin.write_bytes(RUNTIME_BYTES)
    node_bin.chmod(0o755)
    return RuntimeInfo(version="v20.11.1", version_tuple=(20, 11, 1), exec_path=str(node_bin))


@pytest.fixture()
def runner(runtime: RuntimeInfo) -> FakeRunner:
    return FakeRunner(runtime)


@pytest.fixture()
def work_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    root: pathlib.Path = tmp_path / "project"
    root.mkdir()
    (root / "app.js").write_text(ENTRY_SOURCE, encoding="utf-8")
    return root.resolve()


@pytest.fixture()
def logger() -> logging.Logger:
    log: logging.Logger = logging.getLogger("sea_builder_test")
    log.setLevel(logging.DEBUG)
    return log


@pytest.fixture()
def toolchain() -> Toolchain:
    return Toolchain()


@pytest.fixture()
def make_config(work_dir: pathlib.Path):
    def _make(platform: Platform = Platform.LINUX, **kwargs) -> BuildConfig:
        return BuildConfig(
            entry_path=work_dir / "app.js",
            platform=platform,
            work_dir=work_dir,
            **kwargs,
        )

    return _make


@pytest.fixture()
def paths(make_config):
    return artifact_paths(make_config())
