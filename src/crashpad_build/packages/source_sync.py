"""Crashpad checkout synchronization through depot_tools.

Used by the depot strategy, and by the cache-hit path when the marker
survives but the checkout it was built from is gone.

Checkout Structure:
    {checkout_root}/
    ├── .gclient        # gclient solution file
    └── crashpad/       # Crashpad sources plus DEPS-managed third_party/
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

from ..build.process_runner import ProcessRunner
from ..errors import ConfigurationError, PostconditionError

logger = logging.getLogger(__name__)

DEPOT_TOOLS_URL = "https://chromium.googlesource.com/chromium/tools/depot_tools.git"
CRASHPAD_URL = "https://chromium.googlesource.com/crashpad/crashpad.git"

GCLIENT_TEMPLATE = """solutions = [
  {{
    "name": "crashpad",
    "url": "{url}",
    "managed": True,
    "custom_deps": {{}},
    "custom_vars": {{}},
  }},
]
"""


class DepotTools:
    """A depot_tools checkout providing gclient, gn and ninja wrappers."""

    def __init__(self, path: Path, runner: ProcessRunner):
        self.path = Path(path)
        self.runner = runner

    def ensure(self) -> Path:
        """Clone depot_tools if it is not present.

        Raises:
            ExternalProcessError: If git fails
        """
        if (self.path / "gclient.py").exists():
            return self.path

        logger.info(f"Cloning depot_tools into {self.path}")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.runner.run(["git", "clone", "--depth", "1", DEPOT_TOOLS_URL, self.path])
        return self.path

    def command(self, name: str) -> Path:
        suffix = ".bat" if os.name == "nt" else ""
        return self.path / f"{name}{suffix}"

    def env(self) -> Dict[str, str]:
        """Environment for depot_tools commands."""
        return {
            "PATH": f"{self.path}{os.pathsep}{os.environ.get('PATH', '')}",
            "DEPOT_TOOLS_WIN_TOOLCHAIN": "0",
            "DEPOT_TOOLS_UPDATE": "0",
        }


class SourceSync:
    """Fetches the Crashpad checkout and its DEPS with gclient.

    Example usage:
        sync = SourceSync(crashpad_dir, DepotTools(cache_root / "depot_tools", runner), runner)
        crashpad_dir = sync.sync()
    """

    def __init__(
        self,
        crashpad_dir: Path,
        depot_tools: DepotTools,
        runner: ProcessRunner,
        revision: Optional[str] = None,
    ):
        """Initialize source sync.

        Args:
            crashpad_dir: Checkout directory; its parent holds .gclient
            depot_tools: depot_tools checkout
            runner: Process runner
            revision: Crashpad git revision to pin (default: tip of main)
        """
        self.crashpad_dir = Path(crashpad_dir)
        self.depot_tools = depot_tools
        self.runner = runner
        self.revision = revision

    @property
    def checkout_root(self) -> Path:
        return self.crashpad_dir.parent

    @property
    def gclient_file(self) -> Path:
        return self.checkout_root / ".gclient"

    def is_synced(self) -> bool:
        return (self.crashpad_dir / "BUILD.gn").exists()

    def write_gclient(self) -> Path:
        url = f"{CRASHPAD_URL}@{self.revision}" if self.revision else CRASHPAD_URL
        self.checkout_root.mkdir(parents=True, exist_ok=True)
        self.gclient_file.write_text(GCLIENT_TEMPLATE.format(url=url))
        return self.gclient_file

    def sync(self, force: bool = False) -> Path:
        """Ensure the checkout exists.

        Args:
            force: Run gclient sync even when the checkout looks complete

        Returns:
            Path to the checkout

        Raises:
            ConfigurationError: If the checkout directory is not named crashpad
            ExternalProcessError: If git or gclient fails
            PostconditionError: If gclient succeeded but produced no checkout
        """
        if self.is_synced() and not force:
            logger.debug(f"Crashpad checkout present at {self.crashpad_dir}")
            return self.crashpad_dir

        # Crashpad DEPS paths are rooted at a solution named "crashpad"
        if self.crashpad_dir.name != "crashpad":
            raise ConfigurationError(
                f"Cannot sync into {self.crashpad_dir}: gclient checkouts of Crashpad must be named 'crashpad'"
            )

        self.depot_tools.ensure()
        self.write_gclient()

        logger.info(f"Syncing Crashpad into {self.checkout_root} (this can take a while)")
        self.runner.run(
            [self.depot_tools.command("gclient"), "sync", "--no-history"],
            cwd=self.checkout_root,
            env=self.depot_tools.env(),
        )

        if not self.is_synced():
            raise PostconditionError(
                f"gclient sync reported success but {self.crashpad_dir / 'BUILD.gn'} is missing"
            )
        return self.crashpad_dir
