"""Platform resolution from target triples.

This module turns the target triple supplied by the build orchestrator into a
closed Platform description: one OS arm (Linux, MacOS, MobileApple, Android,
Windows) plus a CPU architecture.

Supported targets:
    - Linux: x86_64, aarch64, armv7, i686 (gnu and musl ABIs)
    - macOS: x86_64, aarch64
    - iOS: aarch64 device, aarch64 simulator, x86_64 simulator
    - Android: aarch64, armv7, x86_64, i686
    - Windows: x86_64, i686, aarch64 (msvc); x86_64 (gnu)

Mobile targets also need a toolchain root (Android NDK, Xcode developer
directory). Discovery tries explicit override variables first, then the
conventional install locations, and fails with the full list of locations
that were tried.
"""

import platform as host_platform
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..errors import ConfigurationError
from .environment import BuildEnvironment


class Arch(Enum):
    """CPU architecture, valued by its GN cpu name."""

    X64 = "x64"
    ARM64 = "arm64"
    ARM = "arm"
    X86 = "x86"

    @property
    def gn_cpu(self) -> str:
        return self.value

    @property
    def pointer_size(self) -> int:
        return 8 if self in (Arch.X64, Arch.ARM64) else 4


@dataclass(frozen=True)
class Linux:
    family = "linux"


@dataclass(frozen=True)
class MacOS:
    family = "macos"


@dataclass(frozen=True)
class MobileApple:
    """iOS device or simulator; developer_dir is the Xcode developer directory."""

    simulator: bool
    developer_dir: Path
    family = "ios"


@dataclass(frozen=True)
class Android:
    ndk_path: Path
    family = "android"


@dataclass(frozen=True)
class Windows:
    msvc: bool
    family = "windows"


OperatingSystem = Union[Linux, MacOS, MobileApple, Android, Windows]


@dataclass(frozen=True)
class Platform:
    """Resolved target platform. Immutable once resolved."""

    os: OperatingSystem
    arch: Arch
    triple: str

    @property
    def family(self) -> str:
        return self.os.family

    @property
    def is_apple(self) -> bool:
        return isinstance(self.os, (MacOS, MobileApple))

    @property
    def is_mobile(self) -> bool:
        return isinstance(self.os, (MobileApple, Android))

    @property
    def is_msvc(self) -> bool:
        return isinstance(self.os, Windows) and self.os.msvc

    @property
    def is_simulator(self) -> bool:
        return isinstance(self.os, MobileApple) and self.os.simulator

    @property
    def build_name(self) -> str:
        """Short directory-friendly name, e.g. 'linux-x64' or 'ios-sim-arm64'."""
        if self.is_simulator:
            return f"ios-sim-{self.arch.gn_cpu}"
        return f"{self.family}-{self.arch.gn_cpu}"


# Architecture segment of the triple -> Arch
ARCHITECTURES: Dict[str, Arch] = {
    "x86_64": Arch.X64,
    "aarch64": Arch.ARM64,
    "arm": Arch.ARM,
    "armv7": Arch.ARM,
    "armv7a": Arch.ARM,
    "i686": Arch.X86,
    "x86": Arch.X86,
}

# OS/ABI segment of the triple -> (family, attributes)
OS_SEGMENTS: Dict[str, Tuple[str, Dict[str, bool]]] = {
    "unknown-linux-gnu": ("linux", {}),
    "unknown-linux-musl": ("linux", {}),
    "unknown-linux-gnueabihf": ("linux", {}),
    "unknown-linux-musleabihf": ("linux", {}),
    "apple-darwin": ("macos", {}),
    "apple-ios": ("ios", {"simulator": False}),
    "apple-ios-sim": ("ios", {"simulator": True}),
    "linux-android": ("android", {}),
    "linux-androideabi": ("android", {}),
    "pc-windows-msvc": ("windows", {"msvc": True}),
    "pc-windows-gnu": ("windows", {"msvc": False}),
}

# Every supported (family, variant, arch) combination. Anything else errors.
SUPPORTED_TARGETS = {
    ("linux", None, Arch.X64),
    ("linux", None, Arch.ARM64),
    ("linux", None, Arch.ARM),
    ("linux", None, Arch.X86),
    ("macos", None, Arch.X64),
    ("macos", None, Arch.ARM64),
    ("ios", "device", Arch.ARM64),
    ("ios", "simulator", Arch.ARM64),
    ("ios", "simulator", Arch.X64),
    ("android", None, Arch.ARM64),
    ("android", None, Arch.ARM),
    ("android", None, Arch.X64),
    ("android", None, Arch.X86),
    ("windows", "msvc", Arch.X64),
    ("windows", "msvc", Arch.X86),
    ("windows", "msvc", Arch.ARM64),
    ("windows", "gnu", Arch.X64),
}

NDK_OVERRIDE_VARIABLES = ("ANDROID_NDK_HOME", "ANDROID_NDK_ROOT", "NDK_HOME")
ANDROID_SDK_VARIABLES = ("ANDROID_HOME", "ANDROID_SDK_ROOT")
ANDROID_SDK_LOCATIONS = ("Android/Sdk", "Library/Android/sdk")

APPLE_DEVELOPER_LOCATIONS = (
    Path("/Applications/Xcode.app/Contents/Developer"),
    Path("/Library/Developer/CommandLineTools"),
)


def split_triple(triple: str) -> Tuple[Arch, str, Dict[str, bool]]:
    """Split a target triple into its architecture and OS/ABI segments.

    Args:
        triple: Target triple, e.g. 'aarch64-linux-android'

    Returns:
        Tuple of (arch, family, attributes)

    Raises:
        ConfigurationError: If either segment is unrecognized
    """
    if "-" not in triple:
        raise ConfigurationError(f"Invalid target triple '{triple}': expected <arch>-<os>[-<abi>]")

    arch_segment, os_segment = triple.split("-", 1)
    arch = ARCHITECTURES.get(arch_segment)
    if arch is None:
        raise ConfigurationError(
            f"Unsupported architecture '{arch_segment}' in target '{triple}'. "
            + f"Supported: {sorted(ARCHITECTURES)}"
        )

    os_entry = OS_SEGMENTS.get(os_segment)
    if os_entry is None:
        raise ConfigurationError(
            f"Unsupported OS/ABI '{os_segment}' in target '{triple}'. "
            + f"Supported: {sorted(OS_SEGMENTS)}"
        )

    family, attributes = os_entry
    attributes = dict(attributes)
    # x86_64-apple-ios only exists as a simulator target
    if family == "ios" and arch is Arch.X64:
        attributes["simulator"] = True
    return arch, family, attributes


def _variant(family: str, attributes: Dict[str, bool]) -> Optional[str]:
    if family == "ios":
        return "simulator" if attributes["simulator"] else "device"
    if family == "windows":
        return "msvc" if attributes["msvc"] else "gnu"
    return None


def _ndk_version_key(path: Path) -> Tuple[int, ...]:
    return tuple(int(part) for part in re.findall(r"\d+", path.name))


class PlatformResolver:
    """Resolves a Platform from a BuildEnvironment.

    Example usage:
        env = BuildEnvironment.from_env()
        platform = PlatformResolver(env).resolve()
        print(platform.build_name)
    """

    def __init__(
        self,
        env: BuildEnvironment,
        home: Optional[Path] = None,
        apple_locations: Tuple[Path, ...] = APPLE_DEVELOPER_LOCATIONS,
    ):
        """Initialize resolver.

        Args:
            env: Environment snapshot
            home: Home directory used for conventional SDK locations
            apple_locations: Conventional Xcode developer directories
        """
        self.env = env
        self.home = home if home is not None else Path(env.get("HOME") or Path.home())
        self.apple_locations = apple_locations

    def resolve(self) -> Platform:
        """Resolve the target platform.

        Returns:
            Resolved Platform

        Raises:
            ConfigurationError: If the target is unsupported or a toolchain root is missing
        """
        triple = self.env.target
        arch, family, attributes = split_triple(triple)

        variant = _variant(family, attributes)
        if (family, variant, arch) not in SUPPORTED_TARGETS:
            label = f"{family}/{variant}" if variant else family
            raise ConfigurationError(
                f"Unsupported target '{triple}': {label} does not support architecture {arch.gn_cpu}"
            )

        os_arm: OperatingSystem
        if family == "linux":
            os_arm = Linux()
        elif family == "macos":
            os_arm = MacOS()
        elif family == "ios":
            os_arm = MobileApple(
                simulator=attributes["simulator"],
                developer_dir=self.find_apple_developer_dir(),
            )
        elif family == "android":
            os_arm = Android(ndk_path=self.find_ndk())
        else:
            os_arm = Windows(msvc=attributes["msvc"])

        return Platform(os=os_arm, arch=arch, triple=triple)

    def find_ndk(self) -> Path:
        """Locate the Android NDK.

        Returns:
            Path to the NDK root

        Raises:
            ConfigurationError: If no NDK can be found
        """
        tried: List[str] = []

        for name in NDK_OVERRIDE_VARIABLES:
            value = self.env.get(name)
            if value:
                candidate = Path(value)
                if candidate.is_dir():
                    return candidate
                tried.append(f"${name}={value} (not a directory)")
            else:
                tried.append(f"${name} (unset)")

        sdk_roots: List[Path] = []
        for name in ANDROID_SDK_VARIABLES:
            value = self.env.get(name)
            if value:
                sdk_roots.append(Path(value))
        sdk_roots.extend(self.home / location for location in ANDROID_SDK_LOCATIONS)

        for sdk_root in sdk_roots:
            ndk_dir = sdk_root / "ndk"
            tried.append(str(ndk_dir / "<version>"))
            if ndk_dir.is_dir():
                versions = sorted(
                    (p for p in ndk_dir.iterdir() if p.is_dir()),
                    key=_ndk_version_key,
                    reverse=True,
                )
                if versions:
                    return versions[0]
            bundle = sdk_root / "ndk-bundle"
            tried.append(str(bundle))
            if bundle.is_dir():
                return bundle

        raise ConfigurationError(
            f"Android target '{self.env.target}' but no NDK was found. "
            + "Set ANDROID_NDK_HOME or ANDROID_NDK_ROOT. Tried:\n  "
            + "\n  ".join(tried)
        )

    def find_apple_developer_dir(self) -> Path:
        """Locate the Xcode developer directory for iOS builds.

        Raises:
            ConfigurationError: If no developer directory exists
        """
        tried: List[str] = []
        value = self.env.get("DEVELOPER_DIR")
        if value:
            if Path(value).is_dir():
                return Path(value)
            tried.append(f"$DEVELOPER_DIR={value} (not a directory)")
        else:
            tried.append("$DEVELOPER_DIR (unset)")

        for location in self.apple_locations:
            tried.append(str(location))
            if location.is_dir():
                return location

        raise ConfigurationError(
            f"iOS target '{self.env.target}' but no Xcode developer directory was found. "
            + "Install Xcode or set DEVELOPER_DIR. Tried:\n  "
            + "\n  ".join(tried)
        )


def detect_host_tag() -> str:
    """Return the host '<os>-<arch>' tag used for tool caches and NDK prebuilt dirs.

    Raises:
        ConfigurationError: If the host is not recognized
    """
    system = host_platform.system().lower()
    machine = host_platform.machine().lower()

    if system not in ("linux", "darwin", "windows"):
        raise ConfigurationError(f"Unsupported host platform: {system} {machine}")

    if machine in ("x86_64", "amd64"):
        arch = "x86_64"
    elif machine in ("aarch64", "arm64"):
        arch = "aarch64"
    else:
        raise ConfigurationError(f"Unsupported host architecture: {system} {machine}")

    return f"{system}-{arch}"
