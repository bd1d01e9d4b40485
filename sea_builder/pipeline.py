"""Build pipeline orchestrator.

Runs the stages in a fixed order and stops at the first fatal failure:

1. bundle the entry file into ``out.js``
2. obfuscate ``out.js`` in place (optional)
3. generate ``sea-prep.blob`` from the module
4. copy the host runtime to ``dist/<name>``
5. set the executable icon (optional, soft-failing)
6. inject the blob into the executable and remove the transient files
"""

from dataclasses import dataclass, field
import logging
import pathlib
import time
from typing import Callable

from sea_builder import stages
from sea_builder.config import ArtifactPaths, BuildConfig, Toolchain, artifact_paths
from sea_builder.process import ProcessRunner
from sea_builder.stages import BuildError
from sea_builder.target import RuntimeInfo

STAGE_BUNDLE: str = "bundle"
STAGE_OBFUSCATE: str = "obfuscate"
STAGE_GENERATE_BLOB: str = "generate-blob"
STAGE_COPY_EXECUTABLE: str = "copy-executable"
STAGE_SET_ICON: str = "set-icon"
STAGE_INJECT_BLOB: str = "inject-blob"

STAGE_ORDER: tuple[str, ...] = (
    STAGE_BUNDLE,
    STAGE_OBFUSCATE,
    STAGE_GENERATE_BLOB,
    STAGE_COPY_EXECUTABLE,
    STAGE_SET_ICON,
    STAGE_INJECT_BLOB,
)


@dataclass(frozen=True, slots=True)
class StageResult:
    """Outcome of one completed stage.

    :ivar name: Stage name.
    :ivar status: ``ok`` or ``skipped``.
    :ivar seconds: Wall time spent in the stage.
    """

    name: str
    status: str
    seconds: float


@dataclass(slots=True)
class BuildReport:
    """Per-stage results of a pipeline run."""

    executable: pathlib.Path
    stages: list[StageResult] = field(default_factory=list)

    def status_of(self, name: str) -> str | None:
        """Status of a completed stage.

        :param name: Stage name.
        :returns: ``ok``, ``skipped``, or ``None`` if the stage did not complete.
        """

        for result in self.stages:
            if result.name == name:
                return result.status
        return None


class BuildPipeline:
    """Sequence the build stages for one configuration.

    :param config: Build configuration.
    :param runtime: Host runtime facts (its binary is copied and runs the
        blob generator).
    :param toolchain: External tool commands.
    :param runner: Process runner shared by every stage.
    :param logger: Logger for progress output.
    """

    def __init__(
        self,
        config: BuildConfig,
        *,
        runtime: RuntimeInfo,
        toolchain: Toolchain | None = None,
        runner: ProcessRunner | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if logger is None:
            logger = logging.getLogger("sea_builder")
        self.config: BuildConfig = config
        self.runtime: RuntimeInfo = runtime
        self.toolchain: Toolchain = toolchain if toolchain is not None else Toolchain()
        self.runner: ProcessRunner = runner if runner is not None else ProcessRunner(logger)
        self.logger: logging.Logger = logger
        self.paths: ArtifactPaths = artifact_paths(config)

    def run(self) -> BuildReport:
        """Run every stage in order.

        :returns: Report of the completed stages.
        :raises BuildError: From the first failing stage, with ``stage`` set.
        """

        report: BuildReport = BuildReport(executable=self.paths.executable)
        steps: dict[str, Callable[[], bool]] = {
            STAGE_BUNDLE: self._bundle,
            STAGE_OBFUSCATE: self._obfuscate,
            STAGE_GENERATE_BLOB: self._generate_blob,
            STAGE_COPY_EXECUTABLE: self._copy_executable,
            STAGE_SET_ICON: self._set_icon,
            STAGE_INJECT_BLOB: self._inject_blob,
        }

        t_total0: float = time.perf_counter()
        self.logger.info(f"sea-builder: input={self.config.entry_path}")
        self.logger.info(f"sea-builder: platform={self.config.platform.value}")
        self.logger.info(f"sea-builder: output={self.paths.executable}")
        if self.logger.isEnabledFor(logging.DEBUG) is True:
            self.logger.debug(
                f"sea-builder: runtime={self.runtime.version} exec_path={self.runtime.exec_path}"
            )

        for name in STAGE_ORDER:
            t0: float = time.perf_counter()
            try:
                applied: bool = steps[name]()
            except BuildError as e:
                e.stage = name
                self.logger.error(f"sea-builder: stage {name} failed")
                raise
            t1: float = time.perf_counter()

            status: str = "ok" if applied is True else "skipped"
            report.stages.append(StageResult(name=name, status=status, seconds=t1 - t0))
            self.logger.info(f"sea-builder: {name} {status} in {t1 - t0:.2f}s")

        t_total1: float = time.perf_counter()
        self.logger.info(f"sea-builder: wrote {self.paths.executable}")
        self.logger.info(f"sea-builder: done in {t_total1 - t_total0:.2f}s")
        return report

    def _bundle(self) -> bool:
        stages.bundle(
            self.config.entry_path,
            paths=self.paths,
            toolchain=self.toolchain,
            runner=self.runner,
            logger=self.logger,
        )
        return True

    def _obfuscate(self) -> bool:
        if self.config.obfuscate is False:
            return False
        stages.obfuscate(
            self.paths.module,
            toolchain=self.toolchain,
            runner=self.runner,
            logger=self.logger,
        )
        return True

    def _generate_blob(self) -> bool:
        stages.generate_blob(
            paths=self.paths,
            runtime=self.runtime,
            runner=self.runner,
            logger=self.logger,
        )
        return True

    def _copy_executable(self) -> bool:
        stages.copy_executable(
            source=pathlib.Path(self.runtime.exec_path),
            destination=self.paths.executable,
            logger=self.logger,
        )
        return True

    def _set_icon(self) -> bool:
        return stages.set_icon(
            self.paths.executable,
            platform=self.config.platform,
            icon_path=self.config.icon_path,
            toolchain=self.toolchain,
            runner=self.runner,
            logger=self.logger,
        )

    def _inject_blob(self) -> bool:
        stages.inject_blob(
            self.paths.executable,
            paths=self.paths,
            platform=self.config.platform,
            toolchain=self.toolchain,
            runner=self.runner,
            logger=self.logger,
        )
        return True
