"""Build configuration and the artifact file layout."""

from dataclasses import dataclass, field
import pathlib

from sea_builder.target import Platform, traits_for

MODULE_FILENAME: str = "out.js"
SEA_CONFIG_FILENAME: str = "sea-config.json"
BLOB_FILENAME: str = "sea-prep.blob"
DIST_DIRNAME: str = "dist"
DEFAULT_EXECUTABLE_NAME: str = "out"


@dataclass(frozen=True, slots=True)
class BuildConfig:
    """User-facing build configuration, created once at startup.

    :ivar entry_path: Application entry file.
    :ivar platform: Target platform.
    :ivar icon_path: Optional icon file. When omitted on an icon-capable
        platform, the installed default icon is used if it exists.
    :ivar obfuscate: Obfuscate the bundled module before building the blob.
    :ivar work_dir: Directory holding every transient artifact and ``dist/``.
    :ivar executable_name: Output executable name, without platform suffix.
    """

    entry_path: pathlib.Path
    platform: Platform
    icon_path: pathlib.Path | None = None
    obfuscate: bool = False
    work_dir: pathlib.Path = field(default_factory=pathlib.Path.cwd)
    executable_name: str = DEFAULT_EXECUTABLE_NAME


@dataclass(frozen=True, slots=True)
class Toolchain:
    """Commands used to reach each external tool."""

    node: str = "node"
    esbuild: str = "esbuild"
    rcedit: str = "rcedit"
    postject: str = "postject"


@dataclass(frozen=True, slots=True)
class ArtifactPaths:
    """Where each pipeline artifact lives on disk.

    :ivar work_dir: Directory the transient files are resolved against.
    :ivar module: Bundled module.
    :ivar sea_config: Preparation descriptor (transient).
    :ivar blob: Preparation blob (transient).
    :ivar executable: Target executable (final output).
    """

    work_dir: pathlib.Path
    module: pathlib.Path
    sea_config: pathlib.Path
    blob: pathlib.Path
    executable: pathlib.Path


def executable_filename(platform: Platform, name: str = DEFAULT_EXECUTABLE_NAME) -> str:
    """Output executable filename for ``platform`` (``out.exe`` on Windows)."""

    return f"{name}{traits_for(platform).executable_suffix}"


def artifact_paths(config: BuildConfig) -> ArtifactPaths:
    """Resolve the artifact layout for a build.

    :param config: Build configuration.
    :returns: Absolute artifact paths rooted at ``config.work_dir``.
    """

    # Children run with cwd=work_dir, so relative paths would be resolved twice.
    root: pathlib.Path = config.work_dir.resolve()
    return ArtifactPaths(
        work_dir=root,
        module=root / MODULE_FILENAME,
        sea_config=root / SEA_CONFIG_FILENAME,
        blob=root / BLOB_FILENAME,
        executable=root / DIST_DIRNAME / executable_filename(config.platform, config.executable_name),
    )


def sea_config_descriptor(paths: ArtifactPaths) -> dict[str, object]:
    """Build the preparation descriptor consumed by ``node --experimental-sea-config``.

    Paths are relative to ``paths.work_dir``, where the generator runs.
    """

    return {
        "main": paths.module.relative_to(paths.work_dir).as_posix(),
        "output": paths.blob.relative_to(paths.work_dir).as_posix(),
        "disableExperimentalSEAWarning": True,
    }
