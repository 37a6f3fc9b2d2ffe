"""
Build orchestration for Crashpad.

This module coordinates one build invocation end to end:
- Environment snapshot and platform resolution
- Strategy selection (source, depot or prebuilt)
- The seven ordered build phases, with marker-based skipping
- Handler distribution and link metadata emission

Failure in any phase aborts the run; no phase is retried.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..config.build_config import BuildConfig, derive_build_config
from ..config.environment import WATCHED_VARIABLES, BuildEnvironment
from ..config.platform import Platform, PlatformResolver
from ..errors import BuildCancelledError, CrashpadBuildError
from ..metadata import MetadataChannel
from ..packages.cache import CacheStore, FileCacheStore, has_marker
from ..packages.downloader import PackageDownloader
from ..packages.prebuilt import PrebuiltFetcher
from ..packages.source_sync import DepotTools, SourceSync
from ..packages.tools import ToolAcquisition
from .distributor import ArtifactDistributor
from .phases import BuildPhases
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)

PHASES = ("prepare", "configure", "build", "wrapper", "package", "bindings", "emit-link")
CACHEABLE_PHASES = ("prepare", "configure", "build")


@dataclass
class PhaseResult:
    """Outcome of one phase. Never persisted."""

    name: str
    skipped: bool
    duration: float
    detail: str = ""


@dataclass
class PipelineResult:
    """Result of a complete pipeline run."""

    strategy: str
    config: BuildConfig
    phases: List[PhaseResult] = field(default_factory=list)
    handler_path: Optional[Path] = None
    build_time: float = 0.0

    @property
    def cached(self) -> bool:
        return any(p.skipped for p in self.phases)


def select_strategy(env: BuildEnvironment, platform: Platform) -> str:
    """Pick the build strategy.

    An explicit CRASHPAD_BUILD_STRATEGY wins. Otherwise Windows targets use
    depot_tools, whose toolchain handling GN's Windows build expects, and
    everything else builds from source with downloaded gn/ninja.
    """
    if env.strategy is not None:
        return env.strategy
    if platform.family == "windows":
        return "depot"
    return "source"


class BuildPipeline:
    """
    Runs the Crashpad build for one environment snapshot.

    Example usage:
        env = BuildEnvironment.from_env()
        result = BuildPipeline(env).run()
        for phase in result.phases:
            print(phase.name, phase.skipped)
    """

    def __init__(
        self,
        env: BuildEnvironment,
        channel: Optional[MetadataChannel] = None,
        runner: Optional[ProcessRunner] = None,
        cache: Optional[CacheStore] = None,
        downloader: Optional[PackageDownloader] = None,
        resolver: Optional[PlatformResolver] = None,
    ):
        """Initialize pipeline.

        Args:
            env: Environment snapshot
            channel: Metadata channel (default: stdout, env dialect)
            runner: Process runner (default: env timeouts)
            cache: Cache store (default: filesystem cache under the cache root)
            downloader: Downloader (default: env retries/timeouts)
            resolver: Platform resolver (default: PlatformResolver(env))
        """
        self.env = env
        self.channel = channel or MetadataChannel(dialect=env.directive_dialect)
        self.runner = runner or ProcessRunner(timeout=env.process_timeout, verbose=env.verbose)
        self.cache = cache or FileCacheStore.from_env(env)
        self.downloader = downloader or PackageDownloader(
            retries=env.download_retries, timeout=env.download_timeout
        )
        self.resolver = resolver or PlatformResolver(env)

    def emit_rerun_triggers(self) -> None:
        manifest = self.env.manifest_dir
        self.channel.rerun_if_changed(manifest / "wrapper.h")
        self.channel.rerun_if_changed(manifest / "crashpad_wrapper.cc")
        for name in WATCHED_VARIABLES:
            self.channel.rerun_if_env_changed(name)

    def run(self) -> PipelineResult:
        """Run the pipeline.

        Returns:
            PipelineResult describing each phase

        Raises:
            CrashpadBuildError: Tagged with the failing phase
        """
        start = time.time()
        self.emit_rerun_triggers()

        platform = self._tagged("resolve", self.resolver.resolve)
        strategy = select_strategy(self.env, platform)
        config = derive_build_config(platform, self.env, strategy)
        distributor = ArtifactDistributor(self.env, self.channel)
        logger.info(f"Building Crashpad for {platform.triple} ({self.env.profile}, strategy: {strategy})")

        result = PipelineResult(strategy=strategy, config=config)

        if strategy == "prebuilt":
            fetcher = PrebuiltFetcher(self.env, config, self.cache, self.downloader, self.channel, distributor)
            self._run_phase(result, "prebuilt", lambda: str(fetcher.run()))
            result.handler_path = fetcher.distributed_handler
            result.build_time = time.time() - start
            return result

        phases = self._tagged("prepare", lambda: self._make_phases(config, strategy, distributor))
        cached = has_marker(config.build_dir)

        if cached:
            logger.info(f"Using cached Crashpad build ({config.marker_path} found)")
            logger.info(f"If crashpad_wrapper.cc changed, delete {config.marker_path} and rebuild")
            self._tagged("prepare", phases.ensure_checkout)
            for name in CACHEABLE_PHASES:
                result.phases.append(PhaseResult(name=name, skipped=True, duration=0.0, detail="cached"))
            self._tagged("build", phases.distribute_handler)
        else:
            self._run_phase(result, "prepare", phases.prepare)
            self._run_phase(result, "configure", phases.configure)
            self._run_phase(result, "build", phases.build)

        self._run_phase(result, "wrapper", phases.wrapper)
        self._run_phase(result, "package", phases.package)
        self._run_phase(result, "bindings", phases.bindings)
        self._run_phase(result, "emit-link", phases.emit_link)

        result.handler_path = phases.distributed_handler
        result.build_time = time.time() - start
        logger.info(f"Crashpad build complete in {result.build_time:.2f}s")
        return result

    def _make_phases(self, config: BuildConfig, strategy: str, distributor: ArtifactDistributor) -> BuildPhases:
        depot_tools = DepotTools(self.cache.root / "depot_tools", self.runner)
        source_sync = SourceSync(config.source_dir, depot_tools, self.runner, self.env.crashpad_revision)

        if strategy == "depot":
            return BuildPhases(
                config, self.runner, self.channel, distributor, source_sync, depot_tools=depot_tools
            )

        tools = ToolAcquisition(
            self.cache,
            self.runner,
            self.downloader,
            gn_version=self.env.gn_version,
            ninja_version=self.env.ninja_version,
        )
        return BuildPhases(config, self.runner, self.channel, distributor, source_sync, tools=tools)

    def _run_phase(self, result: PipelineResult, name: str, func: Callable[[], object]) -> object:
        index = len(result.phases) + 1
        total = 1 if name == "prebuilt" else len(PHASES)
        logger.info(f"[{index}/{total}] {name}...")

        start = time.time()
        detail = self._tagged(name, func)
        duration = time.time() - start

        result.phases.append(
            PhaseResult(name=name, skipped=False, duration=duration, detail=str(detail or ""))
        )
        logger.debug(f"      {name} done in {duration:.2f}s")
        return detail

    def _tagged(self, name: str, func: Callable):
        try:
            return func()
        except CrashpadBuildError as e:
            if e.phase is None:
                e.phase = name
            raise
        except KeyboardInterrupt:
            raise BuildCancelledError("Build cancelled", phase=name) from None
        except OSError as e:
            raise CrashpadBuildError(f"{type(e).__name__}: {e}", phase=name) from e
