"""Third-party dependency links inside the Crashpad checkout.

Crashpad expects its dependencies at third_party/<dep>/<subdir> inside its
own tree, while this project vendors them next to the checkout under
<manifest_dir>/third_party/<dep>. DependencyLinker bridges the two with
relative symlinks, falling back to a recursive copy where the OS refuses
unprivileged symlinks (Windows).
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ..metadata import MetadataChannel

logger = logging.getLogger(__name__)

# (dependency name, subdirectory Crashpad expects inside third_party/<name>/)
DEPENDENCIES: Tuple[Tuple[str, str], ...] = (
    ("mini_chromium", "mini_chromium"),
    ("googletest", "googletest"),
    ("zlib", "zlib"),
    ("libfuzzer", "src"),
    ("edo", "edo"),
    ("lss", "lss"),
)


@dataclass
class LinkReport:
    """What a linking pass did."""

    linked: List[str] = field(default_factory=list)
    copied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)


class DependencyLinker:
    """Creates the dependency links Crashpad's GN files expect.

    Re-entrant and idempotent: existing links are left alone, missing
    dependency sources only produce a warning.
    """

    def __init__(
        self,
        manifest_dir: Path,
        crashpad_dir: Path,
        channel: Optional[MetadataChannel] = None,
        allow_symlinks: Optional[bool] = None,
    ):
        """Initialize linker.

        Args:
            manifest_dir: Directory holding third_party/<dep> sources
            crashpad_dir: Crashpad checkout
            channel: Metadata channel for warnings
            allow_symlinks: Force symlinks on/off (default: off on Windows)
        """
        self.manifest_dir = Path(manifest_dir)
        self.crashpad_dir = Path(crashpad_dir)
        self.channel = channel
        self.allow_symlinks = os.name != "nt" if allow_symlinks is None else allow_symlinks

    def source_path(self, name: str) -> Path:
        return self.manifest_dir / "third_party" / name

    def link_path(self, name: str, subdir: str) -> Path:
        return self.crashpad_dir / "third_party" / name / subdir

    def link_all(self) -> LinkReport:
        """Link every dependency.

        Returns:
            LinkReport listing linked, copied, skipped and missing dependencies
        """
        report = LinkReport()
        for name, subdir in DEPENDENCIES:
            self._link_one(name, subdir, report)
        return report

    def _link_one(self, name: str, subdir: str, report: LinkReport) -> None:
        source = self.source_path(name)
        link = self.link_path(name, subdir)

        if link.exists():
            logger.debug(f"{name} already linked")
            report.skipped.append(name)
            return

        if not source.exists():
            message = f"Dependency {name} not found at {source}; skipping"
            if self.channel is not None:
                self.channel.warning(message)
            else:
                logger.warning(message)
            report.missing.append(name)
            return

        link.parent.mkdir(parents=True, exist_ok=True)
        if link.is_symlink():
            # Dangling link left over from a moved checkout
            link.unlink()

        if self.allow_symlinks:
            relative = Path(os.path.relpath(source, link.parent))
            try:
                link.symlink_to(relative, target_is_directory=True)
                logger.info(f"Linked {name} -> {relative}")
                report.linked.append(name)
                return
            except OSError as e:
                logger.info(f"Symlink for {name} refused ({e}); copying instead")

        shutil.copytree(source, link, symlinks=True)
        logger.info(f"Copied {name} -> {link}")
        report.copied.append(name)
