import pytest

from conftest import process_error
from sea_builder import __version__
from sea_builder.cli import main


def _argv(work_dir, *extra):
    return ["-i", str(work_dir / "app.js"), "--work-dir", str(work_dir), "-q", *extra]


def test_no_arguments_prints_splash(capsys):
    assert main([]) == 0
    out = capsys.readouterr().out
    assert "Single Executable Application" in out
    assert "sea-builder -i server.ts -p linux" in out


def test_version(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--version"])
    assert excinfo.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_platform_is_required(work_dir):
    with pytest.raises(SystemExit) as excinfo:
        main(["-i", str(work_dir / "app.js")])
    assert excinfo.value.code == 2


def test_successful_build(work_dir, runner):
    assert main(_argv(work_dir, "-p", "linux"), runner=runner) == 0
    assert (work_dir / "dist" / "out").is_file()
    assert (work_dir / "out.js").exists() is False


def test_custom_name_and_obfuscation(work_dir, runner):
    assert main(_argv(work_dir, "-p", "win32", "--obfuscate", "--name", "server"), runner=runner) == 0
    assert (work_dir / "dist" / "server.exe").is_file()
    assert any(args[0] == "-e" for _, args, _ in runner.calls)


def test_old_runtime_runs_no_stages(work_dir, runner):
    runner.node_version = "v18.19.0"

    assert main(_argv(work_dir, "-p", "linux"), runner=runner) == 1
    assert len(runner.calls) == 1
    assert runner.calls[0][1][0] == "-p"
    assert (work_dir / "out.js").exists() is False
    assert (work_dir / "dist").exists() is False


def test_relative_work_dir(work_dir, runner, monkeypatch):
    monkeypatch.chdir(work_dir)
    (work_dir / "build").mkdir()

    assert main(["-i", "app.js", "-p", "linux", "--work-dir", "build", "-q"], runner=runner) == 0

    build = work_dir / "build"
    assert (build / "dist" / "out").is_file()
    assert (build / "build").exists() is False
    assert sorted(p.name for p in build.iterdir()) == ["dist"]
    assert (work_dir / "out.js").exists() is False


def test_platform_name_is_normalized(work_dir, runner):
    assert main(_argv(work_dir, "-p", " MacOS "), runner=runner) == 0
    assert (work_dir / "dist" / "out").is_file()


def test_unknown_platform_is_a_usage_error(work_dir, runner, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(_argv(work_dir, "-p", "freebsd"), runner=runner)
    assert excinfo.value.code == 2
    assert "Unsupported platform" in capsys.readouterr().err
    assert runner.calls == []


def test_stage_failure_exits_1(work_dir, runner):
    runner.failures["esbuild"] = process_error("esbuild")

    assert main(_argv(work_dir, "-p", "macos"), runner=runner) == 1
    assert (work_dir / "dist").exists() is False
