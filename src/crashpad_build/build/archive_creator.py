"""Archive Creator.

This module creates the static library that carries the compiled glue
object, using whichever archiver the platform calls for.

Archiver styles:
    - ar:      ar rcs <lib> <objects>
    - libtool: libtool -static -o <lib> <objects> <archives to merge>
    - lib:     lib.exe /nologo /OUT:<lib> <objects>

Only libtool can merge existing archives into the output; for the other
styles extra archives are left to the linker.
"""

import logging
from pathlib import Path
from typing import List, Sequence

from ..errors import PostconditionError
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)

MSVC_ARCHIVERS = ("lib", "lib.exe", "llvm-lib", "llvm-lib.exe")


def archiver_style(archiver: str) -> str:
    """Classify an archiver identifier or path as 'ar', 'libtool' or 'lib'."""
    name = Path(archiver).name.lower()
    if "libtool" in name:
        return "libtool"
    if name in MSVC_ARCHIVERS:
        return "lib"
    return "ar"


class ArchiveCreator:
    """Creates static library archives from object files."""

    def __init__(self, runner: ProcessRunner):
        self.runner = runner

    def build_command(
        self,
        archiver: str,
        archive_path: Path,
        object_files: Sequence[Path],
        merge_archives: Sequence[Path] = (),
    ) -> List[str]:
        """Build the archiver command line.

        Args:
            archiver: Archiver identifier or path
            archive_path: Output library path
            object_files: Objects to archive
            merge_archives: Existing archives to fold in (libtool only)

        Returns:
            Command as a list of strings
        """
        style = archiver_style(archiver)
        objects = [str(obj) for obj in object_files]

        if style == "libtool":
            return [archiver, "-static", "-o", str(archive_path), *objects, *[str(a) for a in merge_archives]]

        if merge_archives:
            logger.warning(
                f"{Path(archiver).name} cannot merge archives; "
                + f"{[a.name for a in merge_archives]} must be linked separately"
            )
        if style == "lib":
            return [archiver, "/nologo", f"/OUT:{archive_path}", *objects]
        # 'rcs' flags: r=insert/replace, c=create, s=index (ranlib)
        return [archiver, "rcs", str(archive_path), *objects]

    def create_archive(
        self,
        archiver: str,
        archive_path: Path,
        object_files: Sequence[Path],
        merge_archives: Sequence[Path] = (),
    ) -> Path:
        """Create a static library archive from object files.

        Args:
            archiver: Archiver identifier or path
            archive_path: Path for the output library
            object_files: Object file paths to archive
            merge_archives: Archives merged into the output when the archiver supports it

        Returns:
            Path to the generated archive

        Raises:
            ValueError: If no object files are given
            ExternalProcessError: If the archiver fails
            PostconditionError: If the archiver succeeded but no archive exists
        """
        if not object_files:
            raise ValueError("No object files provided for archive")

        archive_path.parent.mkdir(parents=True, exist_ok=True)
        # ar appends to an existing archive; start from scratch
        if archive_path.exists():
            archive_path.unlink()

        cmd = self.build_command(archiver, archive_path, object_files, merge_archives)
        logger.info(f"Creating {archive_path.name} from {len(object_files)} object file(s)...")
        self.runner.run(cmd)

        if not archive_path.exists():
            raise PostconditionError(f"{Path(archiver).name} reported success but {archive_path} was not created")

        size = archive_path.stat().st_size
        logger.info(f"Created {archive_path.name}: {size:,} bytes")
        return archive_path
