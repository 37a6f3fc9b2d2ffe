"""Handler distribution.

Copies the built crashpad_handler executable to where the final program will
look for it, following the orchestrator's artifact layout:

    native build:  {target_root}/{profile}/crashpad_handler
    cross build:   {target_root}/{triple}/{profile}/crashpad_handler

Android installs the handler as libcrashpad_handler.so so that APK
packaging picks it up. iOS runs its handler in-process and has nothing to
distribute.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from ..config.environment import BuildEnvironment
from ..metadata import MetadataChannel

logger = logging.getLogger(__name__)

HANDLER_ENV_VAR = "CRASHPAD_HANDLER_PATH"


class ArtifactDistributor:
    """Distributes the handler executable and publishes its location."""

    def __init__(self, env: BuildEnvironment, channel: MetadataChannel):
        self.env = env
        self.channel = channel

    @property
    def distribution_dir(self) -> Path:
        root = self.env.target_root
        if self.env.is_cross_compile:
            return root / self.env.target / self.env.profile
        return root / self.env.profile

    def distribute(self, handler: Optional[Path], dest_name: Optional[str]) -> Optional[Path]:
        """Copy the handler into the distribution directory.

        Args:
            handler: Built handler executable (None: platform has no external handler)
            dest_name: File name in the distribution directory

        Returns:
            Distributed path, or None when nothing was distributed
        """
        if handler is None or dest_name is None:
            logger.debug("No external handler for this platform")
            return None

        if not handler.exists():
            self.channel.warning(f"Handler not found at {handler}, skipping copy")
            return None

        dest_dir = self.distribution_dir
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest = dest_dir / dest_name

        logger.info(f"Copying handler from {handler} to {dest}")
        temp = dest.with_name(dest.name + ".tmp")
        shutil.copy2(handler, temp)
        if os.name != "nt":
            temp.chmod(0o755)
        os.replace(temp, dest)

        self.channel.env(HANDLER_ENV_VAR, dest)
        self.channel.metadata("handler", dest)
        return dest
