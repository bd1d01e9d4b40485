"""Target platform and host runtime helpers.

- :class:`Platform` is the closed set of supported targets. Everything that
  differs per platform lives in :data:`PLATFORM_TRAITS`, so adding a target is a
  table edit.
- :func:`probe_runtime` asks the host Node binary for its version and real
  executable path; :func:`check_runtime_version` enforces the minimum version
  that can build a Single Executable Application.
"""

from dataclasses import dataclass
import enum
import json
import re

from sea_builder.process import ProcessFailure, ProcessRunner


class TargetResolutionError(ValueError):
    """Raised when a platform name is not one of the supported targets."""


class VersionUnsupportedError(RuntimeError):
    """Raised when the host runtime is too old (or cannot be probed)."""


class Platform(enum.Enum):
    WIN32 = "win32"
    LINUX = "linux"
    MACOS = "macos"


@dataclass(frozen=True, slots=True)
class PlatformTraits:
    """Per-platform capabilities.

    :ivar executable_suffix: Suffix appended to the output executable name.
    :ivar supports_icon: Whether the executable icon can be replaced.
    :ivar macho_segment_name: Segment to inject into, for segmented binary
        images only. ``None`` means the injector must receive no value.
    """

    executable_suffix: str
    supports_icon: bool
    macho_segment_name: str | None


PLATFORM_TRAITS: dict[Platform, PlatformTraits] = {
    Platform.WIN32: PlatformTraits(executable_suffix=".exe", supports_icon=True, macho_segment_name=None),
    Platform.LINUX: PlatformTraits(executable_suffix="", supports_icon=False, macho_segment_name=None),
    Platform.MACOS: PlatformTraits(executable_suffix="", supports_icon=False, macho_segment_name="NODE_SEA"),
}

MINIMUM_RUNTIME_VERSION: tuple[int, int, int] = (19, 9, 0)

_NODE_VERSION_RE: re.Pattern[str] = re.compile(r"^v?(?P<maj>\d+)\.(?P<min>\d+)\.(?P<patch>\d+)")

_PROBE_EXPR: str = "JSON.stringify({version: process.version, execPath: process.execPath})"


def resolve_platform(name: str) -> Platform:
    """Map a user-supplied platform name to :class:`Platform`.

    :param name: Platform name (``win32``, ``linux`` or ``macos``).
    :returns: The matching platform.
    :raises TargetResolutionError: If the name is not supported.
    """

    try:
        return Platform(name.strip().lower())
    except ValueError:
        supported: str = ", ".join(p.value for p in Platform)
        raise TargetResolutionError(
            f"Unsupported platform {name!r}; expected one of: {supported}."
        ) from None


def traits_for(platform: Platform) -> PlatformTraits:
    """Look up the capabilities of a platform.

    :param platform: Target platform.
    :returns: Its entry in :data:`PLATFORM_TRAITS`.
    """

    return PLATFORM_TRAITS[platform]


@dataclass(frozen=True, slots=True)
class RuntimeInfo:
    """Host runtime facts.

    :ivar version: Version string as reported (e.g. ``v20.11.1``).
    :ivar version_tuple: Parsed ``(major, minor, patch)``.
    :ivar exec_path: Absolute path of the running runtime binary.
    """

    version: str
    version_tuple: tuple[int, int, int]
    exec_path: str


def parse_runtime_version(version: str) -> tuple[int, int, int]:
    """Parse a Node version string into a ``(major, minor, patch)`` tuple.

    :param version: Version such as ``v20.11.1`` or ``20.11.1``.
    :returns: Parsed version tuple.
    :raises VersionUnsupportedError: If the string is not a version.
    """

    m = _NODE_VERSION_RE.match(version.strip())
    if m is None:
        raise VersionUnsupportedError(f"Could not parse runtime version {version!r}.")
    return (int(m.group("maj")), int(m.group("min")), int(m.group("patch")))


def probe_runtime(node: str, runner: ProcessRunner) -> RuntimeInfo:
    """Ask the host runtime for its version and executable path.

    :param node: Node command (name on ``PATH`` or a path).
    :param runner: Process runner.
    :returns: Runtime facts.
    :raises VersionUnsupportedError: If the runtime cannot be run or its
        answer cannot be understood.
    """

    try:
        result = runner.run(node, ["-p", _PROBE_EXPR])
    except ProcessFailure as e:
        raise VersionUnsupportedError(f"Could not query the Node.js runtime: {e}") from e

    try:
        payload = json.loads(result.stdout.strip())
        version: str = str(payload["version"])
        exec_path: str = str(payload["execPath"])
    except (ValueError, KeyError, TypeError) as e:
        raise VersionUnsupportedError(
            f"Unexpected output from the Node.js runtime: {result.stdout!r}"
        ) from e

    return RuntimeInfo(
        version=version,
        version_tuple=parse_runtime_version(version),
        exec_path=exec_path,
    )


def check_runtime_version(
    info: RuntimeInfo,
    minimum: tuple[int, int, int] = MINIMUM_RUNTIME_VERSION,
) -> None:
    """Fail if the runtime cannot build a Single Executable Application.

    :param info: Probed runtime facts.
    :param minimum: Minimum supported version.
    :raises VersionUnsupportedError: If ``info`` is older than ``minimum``.
    """

    if info.version_tuple < minimum:
        wanted: str = ".".join(str(n) for n in minimum)
        raise VersionUnsupportedError(
            f"The current version of Node.js ({info.version}) does not support building a "
            f"Single Executable Application (SEA). This feature is available from Node.js "
            f"v{wanted} onwards. Please update your Node.js version and try again."
        )
