"""The seven build phases.

    1. prepare    - checkout present, gn/ninja available, dependency links in place
    2. configure  - gn gen <build_dir> --args=...
    3. build      - ninja -C <build_dir> <targets>; marker written, handler distributed
    4. wrapper    - compile crashpad_wrapper.cc
    5. package    - archive the glue object into the wrapper library
    6. bindings   - preprocess wrapper.h and generate the ctypes module
    7. emit-link  - link directives on the metadata channel

Each phase method raises on failure; the pipeline decides ordering and
skipping.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..config.build_config import BuildConfig
from ..errors import ConfigurationError, PostconditionError
from ..metadata import MetadataChannel, emit_link_plan
from ..packages.cache import write_marker
from ..packages.dependencies import DependencyLinker
from ..packages.source_sync import DepotTools, SourceSync
from ..packages.tools import ToolAcquisition, ToolPaths
from .archive_creator import ArchiveCreator
from .bindings import BindingGenerator
from .distributor import ArtifactDistributor
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)


class BuildPhases:
    """Implements each build phase for one BuildConfig.

    For the depot strategy, gn and ninja come from depot_tools and run with
    its environment; otherwise they come from ToolAcquisition.
    """

    def __init__(
        self,
        config: BuildConfig,
        runner: ProcessRunner,
        channel: MetadataChannel,
        distributor: ArtifactDistributor,
        source_sync: SourceSync,
        tools: Optional[ToolAcquisition] = None,
        depot_tools: Optional[DepotTools] = None,
    ):
        """Initialize phases.

        Args:
            config: Build configuration
            runner: Process runner
            channel: Metadata channel
            distributor: Handler distributor
            source_sync: Resynchronizes a missing checkout
            tools: Tool acquisition (source strategy)
            depot_tools: depot_tools checkout (depot strategy)
        """
        if tools is None and depot_tools is None:
            raise ValueError("Either tools or depot_tools is required")
        self.config = config
        self.runner = runner
        self.channel = channel
        self.distributor = distributor
        self.source_sync = source_sync
        self.tools = tools
        self.depot_tools = depot_tools
        self.tool_paths: Optional[ToolPaths] = None
        self.distributed_handler: Optional[Path] = None

    @property
    def tool_env(self) -> Dict[str, str]:
        return self.depot_tools.env() if self.depot_tools is not None else {}

    def ensure_checkout(self) -> Path:
        """Make sure the Crashpad checkout exists, syncing it if it is gone."""
        if (self.config.source_dir / "BUILD.gn").exists():
            return self.config.source_dir
        logger.info(f"Crashpad checkout missing at {self.config.source_dir}; synchronizing")
        return self.source_sync.sync()

    def prepare(self) -> str:
        self.ensure_checkout()

        if self.depot_tools is not None:
            self.depot_tools.ensure()
            self.tool_paths = ToolPaths(
                gn=self.depot_tools.command("gn"),
                ninja=self.depot_tools.command("ninja"),
            )
        elif self.tools is not None:
            self.tool_paths = self.tools.ensure_all()
        else:
            raise ConfigurationError("Neither depot_tools nor a tool cache was provided")

        if self.config.dependency_link_evidence.exists():
            return "dependency links present"

        linker = DependencyLinker(self.config.manifest_dir, self.config.source_dir, self.channel)
        report = linker.link_all()
        return (
            f"linked {len(report.linked)}, copied {len(report.copied)}, "
            + f"skipped {len(report.skipped)}, missing {len(report.missing)}"
        )

    def _require_tools(self) -> ToolPaths:
        if self.tool_paths is None:
            raise ConfigurationError("Build tools are not available; the prepare phase did not run")
        return self.tool_paths

    def configure(self) -> str:
        """Run gn gen.

        Raises:
            ExternalProcessError: If gn exits non-zero (stdout/stderr preserved verbatim)
        """
        tools = self._require_tools()
        self.config.build_dir.mkdir(parents=True, exist_ok=True)
        args = self.config.gn_args_string()
        logger.debug(f"GN args: {args}")
        self.runner.run(
            [tools.gn, "gen", self.config.build_dir, f"--args={args}"],
            cwd=self.config.source_dir,
            env=self.tool_env,
        )
        return args

    def build(self) -> str:
        """Run ninja on the allow-listed targets, then mark the build and distribute the handler."""
        tools = self._require_tools()
        self.runner.run(
            [tools.ninja, "-C", self.config.build_dir, *self.config.ninja_targets],
            cwd=self.config.source_dir,
            env=self.tool_env,
        )
        write_marker(self.config.build_dir)
        self.distribute_handler()
        return f"{len(self.config.ninja_targets)} targets"

    def distribute_handler(self) -> Optional[Path]:
        self.distributed_handler = self.distributor.distribute(
            self.config.handler_path, self.config.handler_dest_name
        )
        return self.distributed_handler

    def wrapper_command(self) -> List[str]:
        config = self.config
        source = config.wrapper_source
        obj = config.wrapper_object
        if config.compiler_style == "msvc":
            includes = [f"/I{d}" for d in config.include_dirs]
            return [config.compiler, *config.compile_flags, *includes, "/c", f"/Fo{obj}", str(source)]
        includes = []
        for d in config.include_dirs:
            includes.extend(["-I", str(d)])
        return [config.compiler, *config.compile_flags, *includes, "-c", "-o", str(obj), str(source)]

    def wrapper(self) -> str:
        """Compile the glue translation unit.

        Raises:
            ConfigurationError: If the source or the compiler is missing
            ExternalProcessError: If the compiler fails
            PostconditionError: If the compiler succeeded without producing an object
        """
        config = self.config
        if not config.wrapper_source.exists():
            raise ConfigurationError(f"Glue source not found: {config.wrapper_source}")
        compiler = Path(config.compiler)
        if compiler.is_absolute() and not compiler.exists():
            raise ConfigurationError(f"Compiler not found: {compiler}")

        config.out_dir.mkdir(parents=True, exist_ok=True)
        if config.wrapper_object.exists():
            config.wrapper_object.unlink()

        self.runner.run(self.wrapper_command(), cwd=config.manifest_dir)

        if not config.wrapper_object.exists():
            raise PostconditionError(
                f"Compiler reported success but {config.wrapper_object} was not created"
            )
        return str(config.wrapper_object)

    def package(self) -> str:
        """Archive the glue object (plus platform archives to merge) into the wrapper library."""
        merge: List[Path] = []
        for archive in self.config.combine_libs:
            if archive.exists():
                merge.append(archive)
            else:
                self.channel.warning(f"{archive} not found; not merged into {self.config.static_library.name}")

        ArchiveCreator(self.runner).create_archive(
            self.config.archiver,
            self.config.static_library,
            [self.config.wrapper_object],
            merge,
        )
        return str(self.config.static_library)

    def bindings(self) -> str:
        """Preprocess wrapper.h for the target and generate the ctypes module."""
        config = self.config
        header = config.wrapper_header
        if not header.exists():
            raise ConfigurationError(f"Header not found: {header}")

        result = self.runner.run([*config.preprocess_command(), str(header)], cwd=config.manifest_dir)
        generator = BindingGenerator(header, config.target, config.platform.arch.pointer_size)
        generator.generate(result.stdout, config.bindings_path)
        return str(config.bindings_path)

    def emit_link(self) -> str:
        config = self.config
        search_paths: List[Path] = list(config.search_paths)
        if config.ndk_sysroot_lib is not None and config.ndk_sysroot_lib.is_dir():
            search_paths.append(config.ndk_sysroot_lib)

        emit_link_plan(
            self.channel,
            search_paths,
            config.static_libs,
            config.static_lib_kind,
            config.system_libs,
            config.frameworks,
        )

        if config.handler_name is not None and self.distributed_handler is None:
            self.channel.warning(
                f"crashpad_handler was not found in {config.build_dir}; "
                + "set CRASHPAD_HANDLER at runtime to locate it"
            )
        return f"{len(search_paths)} search paths, {len(config.static_libs)} static libraries"
