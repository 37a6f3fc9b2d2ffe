"""Build configuration: environment snapshot, platform resolution, derived config."""

from .build_config import MARKER_NAME, PLATFORM_TABLE, BuildConfig, PlatformProfile, derive_build_config
from .environment import STRATEGIES, WATCHED_VARIABLES, BuildEnvironment
from .platform import (
    Android,
    Arch,
    Linux,
    MacOS,
    MobileApple,
    Platform,
    PlatformResolver,
    Windows,
    detect_host_tag,
    split_triple,
)

__all__ = [
    "MARKER_NAME",
    "PLATFORM_TABLE",
    "BuildConfig",
    "PlatformProfile",
    "derive_build_config",
    "STRATEGIES",
    "WATCHED_VARIABLES",
    "BuildEnvironment",
    "Android",
    "Arch",
    "Linux",
    "MacOS",
    "MobileApple",
    "Platform",
    "PlatformResolver",
    "Windows",
    "detect_host_tag",
    "split_triple",
]
