"""Pipeline stages.

Each function performs exactly one stage against the filesystem and/or the
process runner. Fatal failures raise a :class:`BuildError` subclass; process
failures are always wrapped into the error of the stage that triggered them.
The icon stage is the one soft stage: its failures are logged and swallowed.
"""

import base64
import json
import logging
import os
import pathlib
import shutil
from typing import Mapping

from sea_builder.config import ArtifactPaths, Toolchain, sea_config_descriptor
from sea_builder.process import ProcessFailure, ProcessRunner
from sea_builder.target import Platform, RuntimeInfo, traits_for


class BuildError(RuntimeError):
    """Raised when a pipeline stage fails.

    :ivar stage: Name of the failing stage, filled in by the orchestrator.
    """

    stage: str | None = None


class BundleError(BuildError):
    """The bundler rejected the entry file or produced no module."""


class ObfuscationError(BuildError):
    """The obfuscator failed; the module on disk is left as it was."""


class BlobGenerationError(BuildError):
    """The preparation blob could not be produced."""


class FilesystemError(BuildError):
    """The target executable could not be created."""


class MissingArtifactError(BuildError):
    """An artifact a stage depends on is not on disk."""


class InjectionError(BuildError):
    """The injector could not embed the blob."""


SEA_RESOURCE_NAME: str = "NODE_SEA_BLOB"

# Fuse string the Node.js runtime scans for to detect an embedded blob.
SENTINEL_FUSE: str = base64.b64decode(
    "Tk9ERV9TRUFfRlVTRV9mY2U2ODBhYjJjYzQ2N2I2ZTA3MmI4YjVkZjE5OTZiMg=="
).decode("ascii")

DEFAULT_ICON_ENV: str = "APPDATA"
DEFAULT_ICON_RELPATH: tuple[str, ...] = ("npm", "node_modules", "sea-builder", "default.ico")


def obfuscation_policy() -> dict[str, object]:
    """Return the js-confuser options used for every build.

    :returns: A fresh options dict.
    """

    return {
        "target": "node",
        "preset": "low",
        "lock": {
            "integrity": True,
            "selfDefending": True,
            "antiDebug": True,
        },
        "calculator": True,
        "compact": True,
        "hexadecimalNumbers": True,
        "controlFlowFlattening": 0.25,
        "dispatcher": 0.5,
        "duplicateLiteralsRemoval": True,
        "identifierGenerator": "randomized",
        "minify": False,
        "movedDeclarations": True,
        "objectExtraction": True,
        "opaquePredicates": 0.1,
        "renameVariables": True,
        "renameGlobals": True,
        "stringConcealing": True,
    }


# Runs under ``node -e``; argv: <source> <destination> <policy json>.
# js-confuser 1.x resolves to a string, 2.x to ``{code}``.
_OBFUSCATE_SCRIPT: str = """
const fs = require("fs");
const JsConfuser = require("js-confuser");
const [src, dst, policy] = process.argv.slice(1);
const code = fs.readFileSync(src, "utf-8");
Promise.resolve(JsConfuser.obfuscate(code, JSON.parse(policy)))
  .then((result) => {
    fs.writeFileSync(dst, typeof result === "string" ? result : result.code);
  })
  .catch((error) => {
    console.error(error && error.stack ? error.stack : String(error));
    process.exit(1);
  });
"""


def bundle(
    entry_path: pathlib.Path,
    *,
    paths: ArtifactPaths,
    toolchain: Toolchain,
    runner: ProcessRunner,
    logger: logging.Logger,
) -> None:
    """Bundle the application into a single module.

    The bundler itself stays external so the produced module can still
    resolve it at runtime.

    :param entry_path: Application entry file.
    :param paths: Artifact layout; the module is written to ``paths.module``.
    :param toolchain: External tool commands.
    :param runner: Process runner.
    :param logger: Logger for progress output.
    :raises BundleError: If the entry is missing or the bundler fails.
    """

    if entry_path.exists() is False:
        raise BundleError(f"Input file does not exist: {entry_path}")
    if entry_path.is_file() is False:
        raise BundleError(f"Input path is not a file: {entry_path}")

    logger.info(f"sea-builder: bundling {entry_path} -> {paths.module.name}")
    try:
        runner.run(
            toolchain.esbuild,
            [
                str(entry_path.resolve()),
                "--bundle",
                "--platform=node",
                f"--outfile={paths.module}",
                "--external:esbuild",
            ],
            cwd=paths.work_dir,
        )
    except ProcessFailure as e:
        raise BundleError(f"Bundling failed: {e}") from e

    if paths.module.is_file() is False:
        raise BundleError(f"Bundler reported success but did not write {paths.module}")


def obfuscate(
    module_path: pathlib.Path,
    *,
    toolchain: Toolchain,
    runner: ProcessRunner,
    logger: logging.Logger,
    policy: Mapping[str, object] | None = None,
) -> None:
    """Obfuscate the bundled module in place.

    The obfuscated code is written next to the module and moved over it with
    :func:`os.replace`, so the module is never left half-written.

    :param module_path: Bundled module to rewrite.
    :param toolchain: External tool commands.
    :param runner: Process runner.
    :param logger: Logger for progress output.
    :param policy: js-confuser options (defaults to :func:`obfuscation_policy`).
    :raises ObfuscationError: If obfuscation fails.
    """

    if module_path.is_file() is False:
        raise ObfuscationError(f"Bundled module does not exist: {module_path}")

    tmp_path: pathlib.Path = module_path.with_name(module_path.name + ".tmp")
    logger.info(f"sea-builder: obfuscating {module_path.name}")
    try:
        try:
            runner.run(
                toolchain.node,
                [
                    "-e",
                    _OBFUSCATE_SCRIPT,
                    "--",
                    str(module_path.resolve()),
                    str(tmp_path.resolve()),
                    json.dumps(dict(policy) if policy is not None else obfuscation_policy()),
                ],
                cwd=module_path.parent,
            )
        except ProcessFailure as e:
            raise ObfuscationError(f"Obfuscation failed: {e}") from e

        if tmp_path.is_file() is False:
            raise ObfuscationError(f"Obfuscator reported success but did not write {tmp_path}")

        try:
            os.replace(tmp_path, module_path)
        except OSError as e:
            raise ObfuscationError(f"Could not replace {module_path}: {e}") from e
    finally:
        tmp_path.unlink(missing_ok=True)


def generate_blob(
    *,
    paths: ArtifactPaths,
    runtime: RuntimeInfo,
    runner: ProcessRunner,
    logger: logging.Logger,
) -> None:
    """Write the preparation descriptor and turn it into the preparation blob.

    The descriptor is deleted on success and kept on failure for diagnosis.

    :param paths: Artifact layout.
    :param runtime: Host runtime; the same binary later hosts the blob.
    :param runner: Process runner.
    :param logger: Logger for progress output.
    :raises BlobGenerationError: If the generator fails or writes no blob.
    """

    descriptor: dict[str, object] = sea_config_descriptor(paths)
    try:
        paths.sea_config.write_text(json.dumps(descriptor, indent=2), encoding="utf-8")
    except OSError as e:
        raise BlobGenerationError(f"Could not write {paths.sea_config}: {e}") from e
    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"sea-builder: wrote {paths.sea_config}: {descriptor}")

    logger.info("sea-builder: generating SEA preparation blob")
    try:
        result = runner.run(
            runtime.exec_path,
            ["--experimental-sea-config", paths.sea_config.name],
            cwd=paths.work_dir,
        )
    except ProcessFailure as e:
        raise BlobGenerationError(f"SEA preparation blob generation failed: {e}") from e

    if paths.blob.is_file() is False:
        raise BlobGenerationError(
            f"SEA preparation blob file was not created: {paths.blob}\n"
            f"STDOUT:\n{result.stdout}\n"
            f"STDERR:\n{result.stderr}"
        )

    try:
        paths.sea_config.unlink()
    except OSError as e:
        raise BlobGenerationError(f"Could not remove {paths.sea_config}: {e}") from e


def copy_executable(
    *,
    source: pathlib.Path,
    destination: pathlib.Path,
    logger: logging.Logger,
) -> None:
    """Copy the host runtime binary to the output path.

    :param source: Runtime executable to copy.
    :param destination: Target executable path; parent directories are created.
    :param logger: Logger for progress output.
    :raises FilesystemError: If the copy fails.
    """

    logger.info(f"sea-builder: copying {source} -> {destination}")
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
    except OSError as e:
        raise FilesystemError(f"Could not create executable copy {destination}: {e}") from e


def default_icon_path(environ: Mapping[str, str] = os.environ) -> pathlib.Path | None:
    """Return the installed default icon, or ``None`` if it cannot be found."""

    root: str | None = environ.get(DEFAULT_ICON_ENV)
    if not root:
        return None
    candidate: pathlib.Path = pathlib.Path(root).joinpath(*DEFAULT_ICON_RELPATH)
    if candidate.is_file() is False:
        return None
    return candidate


def set_icon(
    executable: pathlib.Path,
    *,
    platform: Platform,
    icon_path: pathlib.Path | None,
    toolchain: Toolchain,
    runner: ProcessRunner,
    logger: logging.Logger,
    environ: Mapping[str, str] = os.environ,
) -> bool:
    """Brand the executable with an icon where the platform allows it.

    Never fails the build: problems are logged as warnings.

    :param executable: Target executable.
    :param platform: Target platform.
    :param icon_path: Icon requested by the user, if any.
    :param toolchain: External tool commands.
    :param runner: Process runner.
    :param logger: Logger for progress output.
    :param environ: Environment used to locate the default icon.
    :returns: ``True`` if an icon was applied.
    """

    supported: bool = traits_for(platform).supports_icon

    if icon_path is not None:
        if icon_path.is_file() is False:
            logger.warning(f"sea-builder: icon file not found, skipping: {icon_path}")
            return False
        if supported is False:
            logger.warning("sea-builder: icon setting is only supported on Windows.")
            return False
        return _apply_icon(executable, icon_path, toolchain=toolchain, runner=runner, logger=logger)

    if supported is False:
        logger.info("sea-builder: no icon specified or not supported on this platform.")
        return False

    default_icon: pathlib.Path | None = default_icon_path(environ)
    if default_icon is None:
        logger.info("sea-builder: no icon specified and no default icon found; skipping.")
        return False
    return _apply_icon(executable, default_icon, toolchain=toolchain, runner=runner, logger=logger)


def _apply_icon(
    executable: pathlib.Path,
    icon_path: pathlib.Path,
    *,
    toolchain: Toolchain,
    runner: ProcessRunner,
    logger: logging.Logger,
) -> bool:
    """Run rcedit to set the icon; failures are logged, never raised.

    :param executable: Target executable.
    :param icon_path: Icon file to apply.
    :param toolchain: External tool commands.
    :param runner: Process runner.
    :param logger: Logger for progress output.
    :returns: ``True`` if the icon was applied.
    """

    logger.info(f"sea-builder: setting icon {icon_path}")
    try:
        runner.run(toolchain.rcedit, [str(executable), "--set-icon", str(icon_path.resolve())])
    except ProcessFailure as e:
        logger.warning(f"sea-builder: error setting icon: {e}")
        return False
    return True


def inject_blob(
    executable: pathlib.Path,
    *,
    paths: ArtifactPaths,
    platform: Platform,
    toolchain: Toolchain,
    runner: ProcessRunner,
    logger: logging.Logger,
) -> None:
    """Inject the preparation blob into the executable, then clean up.

    :param executable: Target executable, mutated in place.
    :param paths: Artifact layout (blob and module are removed afterwards).
    :param platform: Target platform; decides the segment name argument.
    :param toolchain: External tool commands.
    :param runner: Process runner.
    :param logger: Logger for progress output.
    :raises MissingArtifactError: If the blob does not exist.
    :raises InjectionError: If the injector fails.
    """

    if paths.blob.is_file() is False:
        raise MissingArtifactError(f"The SEA preparation blob file does not exist: {paths.blob}")

    args: list[str] = [
        str(executable),
        SEA_RESOURCE_NAME,
        str(paths.blob),
        "--sentinel-fuse",
        SENTINEL_FUSE,
    ]
    segment: str | None = traits_for(platform).macho_segment_name
    if segment is not None:
        args.extend(["--macho-segment-name", segment])

    logger.info(f"sea-builder: injecting SEA blob into {executable}")
    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"sea-builder: blob size={paths.blob.stat().st_size} bytes")
    try:
        runner.run(toolchain.postject, args, cwd=paths.work_dir)
    except ProcessFailure as e:
        raise InjectionError(f"Error injecting SEA blob: {e}") from e

    _remove_artifact(paths.blob, logger=logger)
    _remove_artifact(paths.module, logger=logger)


def _remove_artifact(path: pathlib.Path, *, logger: logging.Logger) -> None:
    """Delete a transient artifact, logging (not raising) on failure.

    :param path: File to delete.
    :param logger: Logger for the warning.
    """

    try:
        path.unlink()
    except OSError as e:
        logger.warning(f"sea-builder: could not remove {path}: {e}")
