"""Build configuration derived from a resolved Platform.

All per-platform decisions live in PLATFORM_TABLE, one row per OS family.
derive_build_config() flattens the matching row into an immutable BuildConfig
once; nothing downstream branches on the platform again. GN arguments,
compiler flags and link libraries all come out of the same row, so they
cannot drift apart.

Directory layout (all namespaced by target triple and profile):
    <target_root>/
    └── {triple}/
        └── {profile}/
            ├── crashpad_build/        # GN/Ninja output directory
            │   ├── .crashpad-ok       # Marker: prepare/configure/build done
            │   ├── obj/               # Native static libraries
            │   └── crashpad_handler   # Handler executable
            └── crashpad_out/          # Glue object, archive, bindings
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import ConfigurationError
from .environment import BuildEnvironment
from .platform import Android, Arch, MobileApple, Platform, Windows

MARKER_NAME = ".crashpad-ok"
ANDROID_API_LEVEL = 21
IOS_DEPLOYMENT_TARGET = "14.0"

GnArgs = Tuple[Tuple[str, str], ...]
LinkLib = Tuple[Optional[str], str]

# Static libraries produced by the native build, directories under obj/
BASE_SEARCH_SUBDIRS = (
    "client",
    "util",
    "third_party/mini_chromium/mini_chromium/base",
    "minidump",
    "snapshot",
    "handler",
)

DESKTOP_NINJA_TARGETS = (
    "client:client",
    "client:common",
    "util:util",
    "minidump:format",
    "minidump:minidump",
    "snapshot:context",
    "snapshot:snapshot",
    "handler:common",
    "third_party/mini_chromium/mini_chromium/base:base",
    "handler:crashpad_handler",
)

IOS_NINJA_TARGETS = (
    "client:client",
    "client:common",
    "handler:common",
    "util:util",
    "util:net",
    "util:mig_output",
    "minidump:format",
    "minidump:minidump",
    "snapshot:context",
    "snapshot:snapshot",
    "third_party/mini_chromium/mini_chromium/base:base",
)

# Dependency-respecting link order: dependents before their dependencies
CORE_STATIC_LIBS = (
    "crashpad_wrapper",
    "client",
    "common",
    "util",
    "format",
    "minidump",
    "snapshot",
    "context",
    "base",
)

ANDROID_CLANG_TRIPLES: Dict[Arch, str] = {
    Arch.ARM64: "aarch64-linux-android",
    Arch.ARM: "armv7a-linux-androideabi",
    Arch.X64: "x86_64-linux-android",
    Arch.X86: "i686-linux-android",
}

ANDROID_SYSROOT_TRIPLES: Dict[Arch, str] = {
    Arch.ARM64: "aarch64-linux-android",
    Arch.ARM: "arm-linux-androideabi",
    Arch.X64: "x86_64-linux-android",
    Arch.X86: "i686-linux-android",
}


def gn_string(value: str) -> str:
    return f'"{value}"'


def gn_bool(value: bool) -> str:
    return "true" if value else "false"


@dataclass(frozen=True)
class Toolchain:
    """Compiler-related decisions for one platform/profile pair."""

    compiler: str
    style: str
    compile_flags: Tuple[str, ...]
    clang_target: Optional[str]
    gn_args: GnArgs
    sysroot: Optional[Path] = None


@dataclass(frozen=True)
class PlatformProfile:
    """One row of the platform table.

    Attributes:
        target_os: GN target_os value
        archiver: Default archiver identifier
        ninja_targets: Allow-listed build targets
        extra_static_libs: Libraries appended to CORE_STATIC_LIBS
        extra_search_subdirs: obj/ subdirectories appended to BASE_SEARCH_SUBDIRS
        system_libs: (kind, name) pairs for system libraries
        frameworks: Apple frameworks
        handler_name: Handler executable name in the build dir (None: in-process handler)
        handler_dest_name: Handler file name in the distribution dir
        combine_libs: Pre-built pieces (relative to obj/) merged into the wrapper archive
        toolchain: Callable producing compiler, flags and extra GN args
    """

    target_os: str
    archiver: str
    ninja_targets: Tuple[str, ...]
    extra_static_libs: Tuple[str, ...]
    extra_search_subdirs: Tuple[str, ...]
    system_libs: Tuple[LinkLib, ...]
    frameworks: Tuple[str, ...]
    handler_name: Optional[str]
    handler_dest_name: Optional[str]
    combine_libs: Tuple[str, ...]
    toolchain: Callable[[Platform, BuildEnvironment], Toolchain]


def _gnu_flags(env: BuildEnvironment, pic: bool) -> List[str]:
    flags = ["-std=c++17"]
    flags.append("-g" if env.profile == "debug" else "-O2")
    if pic:
        flags.append("-fPIC")
    return flags


def _host_tag(env: BuildEnvironment) -> str:
    """NDK prebuilt host directory for the host triple."""
    if "apple-darwin" in env.host:
        return "darwin-x86_64"
    if "windows" in env.host:
        return "windows-x86_64"
    return "linux-x86_64"


def _os_of(platform: Platform, kind: type):
    if not isinstance(platform.os, kind):
        raise ConfigurationError(f"Target {platform.triple} is not a {kind.__name__} platform")
    return platform.os


def ndk_prebuilt_dir(android: Android, env: BuildEnvironment) -> Path:
    return android.ndk_path / "toolchains" / "llvm" / "prebuilt" / _host_tag(env)


def _linux_toolchain(platform: Platform, env: BuildEnvironment) -> Toolchain:
    return Toolchain(
        compiler=env.cxx or "c++",
        style="gnu",
        compile_flags=tuple(_gnu_flags(env, env.link_type == "shared")),
        clang_target=None,
        gn_args=(),
    )


def _macos_toolchain(platform: Platform, env: BuildEnvironment) -> Toolchain:
    return _linux_toolchain(platform, env)


def _ios_toolchain(platform: Platform, env: BuildEnvironment) -> Toolchain:
    apple = _os_of(platform, MobileApple)
    cpu = "arm64" if platform.arch is Arch.ARM64 else "x86_64"
    sdk = "iPhoneSimulator" if apple.simulator else "iPhoneOS"
    suffix = "-simulator" if apple.simulator else ""
    clang_target = f"{cpu}-apple-ios{IOS_DEPLOYMENT_TARGET}{suffix}"
    sysroot = apple.developer_dir / "Platforms" / f"{sdk}.platform" / "Developer" / "SDKs" / f"{sdk}.sdk"

    flags = _gnu_flags(env, False)
    flags += ["-DTARGET_OS_IOS=1", "-target", clang_target, "-isysroot", str(sysroot)]

    gn_args: List[Tuple[str, str]] = [("ios_enable_code_signing", gn_bool(False))]
    if apple.simulator:
        gn_args.append(("target_environment", gn_string("simulator")))
    return Toolchain(
        compiler=env.cxx or "c++",
        style="gnu",
        compile_flags=tuple(flags),
        clang_target=clang_target,
        gn_args=tuple(gn_args),
        sysroot=sysroot,
    )


def _android_toolchain(platform: Platform, env: BuildEnvironment) -> Toolchain:
    android = _os_of(platform, Android)
    clang_target = f"{ANDROID_CLANG_TRIPLES[platform.arch]}{ANDROID_API_LEVEL}"
    compiler = env.cxx or str(ndk_prebuilt_dir(android, env) / "bin" / f"{clang_target}-clang++")
    return Toolchain(
        compiler=compiler,
        style="gnu",
        compile_flags=tuple(_gnu_flags(env, True)),
        clang_target=clang_target,
        gn_args=(
            ("android_ndk_root", gn_string(str(android.ndk_path))),
            ("android_api_level", str(ANDROID_API_LEVEL)),
        ),
    )


def _windows_toolchain(platform: Platform, env: BuildEnvironment) -> Toolchain:
    if not _os_of(platform, Windows).msvc:
        return Toolchain(
            compiler=env.cxx or "c++",
            style="gnu",
            compile_flags=tuple(_gnu_flags(env, False)),
            clang_target=None,
            gn_args=(),
        )

    # The runtime library must match what GN links by default, or the
    # final link fails with mismatched CRT symbols.
    debug = env.profile == "debug"
    crt = "/MDd" if debug else "/MD"
    flags = ["/nologo", "/std:c++17", "/EHsc", crt]
    flags += ["/Zi", "/Od", "/D_ITERATOR_DEBUG_LEVEL=2"] if debug else ["/O2"]
    return Toolchain(
        compiler=env.cxx or "cl.exe",
        style="msvc",
        compile_flags=tuple(flags),
        clang_target=None,
        gn_args=(("extra_cflags", gn_string(crt)),),
    )


APPLE_FRAMEWORKS = ("Foundation", "Security", "CoreFoundation")

PLATFORM_TABLE: Dict[str, PlatformProfile] = {
    "linux": PlatformProfile(
        target_os="linux",
        archiver="ar",
        ninja_targets=DESKTOP_NINJA_TARGETS,
        extra_static_libs=(),
        extra_search_subdirs=(),
        system_libs=((None, "stdc++"), (None, "pthread")),
        frameworks=(),
        handler_name="crashpad_handler",
        handler_dest_name="crashpad_handler",
        combine_libs=(),
        toolchain=_linux_toolchain,
    ),
    "macos": PlatformProfile(
        target_os="mac",
        archiver="libtool",
        ninja_targets=DESKTOP_NINJA_TARGETS,
        extra_static_libs=("mig_output",),
        extra_search_subdirs=(),
        system_libs=((None, "c++"), ("dylib", "bsm")),
        frameworks=APPLE_FRAMEWORKS + ("IOKit",),
        handler_name="crashpad_handler",
        handler_dest_name="crashpad_handler",
        combine_libs=(),
        toolchain=_macos_toolchain,
    ),
    "ios": PlatformProfile(
        target_os="ios",
        archiver="libtool",
        ninja_targets=IOS_NINJA_TARGETS,
        extra_static_libs=("mig_output",),
        extra_search_subdirs=(),
        system_libs=((None, "c++"), (None, "z")),
        frameworks=APPLE_FRAMEWORKS + ("UIKit",),
        handler_name=None,
        handler_dest_name=None,
        combine_libs=("handler/libcommon.a", "util/libnet.a"),
        toolchain=_ios_toolchain,
    ),
    "android": PlatformProfile(
        target_os="android",
        archiver="ar",
        ninja_targets=DESKTOP_NINJA_TARGETS,
        extra_static_libs=(),
        extra_search_subdirs=(),
        system_libs=((None, "c++_static"), (None, "c++abi"), (None, "log"), (None, "dl")),
        frameworks=(),
        handler_name="crashpad_handler",
        handler_dest_name="libcrashpad_handler.so",
        combine_libs=(),
        toolchain=_android_toolchain,
    ),
    "windows": PlatformProfile(
        target_os="win",
        archiver="lib.exe",
        ninja_targets=DESKTOP_NINJA_TARGETS,
        extra_static_libs=("compat",),
        extra_search_subdirs=("compat",),
        system_libs=((None, "advapi32"), (None, "kernel32"), (None, "user32"), (None, "winmm")),
        frameworks=(),
        handler_name="crashpad_handler.exe",
        handler_dest_name="crashpad_handler.exe",
        combine_libs=(),
        toolchain=_windows_toolchain,
    ),
}


@dataclass(frozen=True)
class BuildConfig:
    """Flat, immutable build configuration for one (platform, environment) pair."""

    platform: Platform
    profile: str
    verbose: bool
    manifest_dir: Path
    source_dir: Path
    build_dir: Path
    out_dir: Path
    compiler: str
    compiler_style: str
    archiver: str
    compile_flags: Tuple[str, ...]
    include_dirs: Tuple[Path, ...]
    gn_args: GnArgs
    ninja_targets: Tuple[str, ...]
    search_paths: Tuple[Path, ...]
    static_libs: Tuple[str, ...]
    static_lib_kind: str
    system_libs: Tuple[LinkLib, ...]
    frameworks: Tuple[str, ...]
    combine_libs: Tuple[Path, ...]
    bindgen_args: Tuple[str, ...]
    handler_name: Optional[str]
    handler_dest_name: Optional[str]
    ndk_sysroot_lib: Optional[Path]

    @property
    def target(self) -> str:
        return self.platform.triple

    @property
    def checkout_root(self) -> Path:
        """Directory holding the .gclient file (parent of the source dir)."""
        return self.source_dir.parent

    @property
    def obj_dir(self) -> Path:
        return self.build_dir / "obj"

    @property
    def marker_path(self) -> Path:
        return self.build_dir / MARKER_NAME

    @property
    def wrapper_source(self) -> Path:
        return self.manifest_dir / "crashpad_wrapper.cc"

    @property
    def wrapper_header(self) -> Path:
        return self.manifest_dir / "wrapper.h"

    @property
    def wrapper_object(self) -> Path:
        suffix = ".obj" if self.compiler_style == "msvc" else ".o"
        return self.out_dir / f"crashpad_wrapper{suffix}"

    @property
    def static_library(self) -> Path:
        if self.compiler_style == "msvc":
            return self.out_dir / "crashpad_wrapper.lib"
        return self.out_dir / "libcrashpad_wrapper.a"

    @property
    def bindings_path(self) -> Path:
        return self.out_dir / "bindings.py"

    @property
    def handler_path(self) -> Optional[Path]:
        if self.handler_name is None:
            return None
        return self.build_dir / self.handler_name

    @property
    def dependency_link_evidence(self) -> Path:
        """Path whose presence shows the third-party links are in place."""
        return self.source_dir / "third_party" / "mini_chromium" / "mini_chromium"

    def gn_args_string(self) -> str:
        return " ".join(f"{key} = {value}" for key, value in self.gn_args)

    def preprocess_command(self) -> List[str]:
        """Command that preprocesses the public header for binding generation."""
        if self.compiler_style == "msvc":
            return [self.compiler, "/nologo", "/E", "/TC"]
        return [self.compiler, "-E", "-x", "c", *self.bindgen_args]


def derive_build_config(
    platform: Platform, env: BuildEnvironment, strategy: str = "source"
) -> BuildConfig:
    """Derive the build configuration for a platform.

    Pure function: identical inputs always produce equal BuildConfigs.

    Args:
        platform: Resolved platform
        env: Environment snapshot
        strategy: 'source' or 'depot' (selects the default checkout location)

    Returns:
        Immutable BuildConfig

    Raises:
        ConfigurationError: If the platform family has no table row
    """
    row = PLATFORM_TABLE.get(platform.family)
    if row is None:
        raise ConfigurationError(f"No build configuration for platform family '{platform.family}'")

    namespace = env.target_root / platform.triple / env.profile
    build_dir = namespace / "crashpad_build"
    out_dir = env.out_dir if env.out_dir is not None else namespace / "crashpad_out"

    if env.source_dir is not None:
        source_dir = env.source_dir
    elif strategy == "depot":
        source_dir = env.target_root / platform.triple / "crashpad_source" / "crashpad"
    else:
        source_dir = env.manifest_dir / "third_party" / "crashpad"

    toolchain = row.toolchain(platform, env)
    # Mobile targets always link statically
    shared = env.link_type == "shared" and not platform.is_mobile

    gn_args: List[Tuple[str, str]] = [
        ("is_debug", gn_bool(env.profile == "debug")),
        ("is_component_build", gn_bool(shared)),
        ("target_os", gn_string(row.target_os)),
        ("target_cpu", gn_string(platform.arch.gn_cpu)),
    ]
    gn_args.extend(toolchain.gn_args)

    compile_flags = toolchain.compile_flags + tuple(env.extra_flags)

    obj_dir = build_dir / "obj"
    search_paths = tuple(obj_dir / sub for sub in BASE_SEARCH_SUBDIRS + row.extra_search_subdirs)
    search_paths += (out_dir,)

    bindgen_args: Tuple[str, ...] = ()
    if toolchain.clang_target and toolchain.style == "gnu":
        bindgen_args = ("-target", toolchain.clang_target)
    if toolchain.sysroot is not None:
        bindgen_args += ("-isysroot", str(toolchain.sysroot))
    if isinstance(platform.os, MobileApple):
        bindgen_args += ("-DTARGET_OS_IOS=1",)

    ndk_sysroot_lib = None
    if isinstance(platform.os, Android):
        ndk_sysroot_lib = (
            ndk_prebuilt_dir(platform.os, env) / "sysroot" / "usr" / "lib"
            / ANDROID_SYSROOT_TRIPLES[platform.arch]
        )

    archiver = env.ar or row.archiver
    if platform.family == "windows" and not platform.is_msvc and env.ar is None:
        archiver = "ar"

    return BuildConfig(
        platform=platform,
        profile=env.profile,
        verbose=env.verbose,
        manifest_dir=env.manifest_dir,
        source_dir=source_dir,
        build_dir=build_dir,
        out_dir=out_dir,
        compiler=toolchain.compiler,
        compiler_style=toolchain.style,
        archiver=archiver,
        compile_flags=compile_flags,
        include_dirs=(source_dir, source_dir / "third_party" / "mini_chromium" / "mini_chromium"),
        gn_args=tuple(gn_args),
        ninja_targets=row.ninja_targets,
        search_paths=search_paths,
        static_libs=CORE_STATIC_LIBS + row.extra_static_libs,
        static_lib_kind="dylib" if shared else "static",
        system_libs=row.system_libs,
        frameworks=row.frameworks,
        combine_libs=tuple(obj_dir / rel for rel in row.combine_libs),
        bindgen_args=bindgen_args,
        handler_name=row.handler_name,
        handler_dest_name=row.handler_dest_name,
        ndk_sysroot_lib=ndk_sysroot_lib,
    )
