"""Thin universal binaries in the changed tree into per-architecture files."""

import stat
from pathlib import Path

from common.constants import APPLEDOUBLE_PREFIX
from common.logger import get_logger
from toolkit.base import BinaryIntrospector
from workflow.errors import ToolError
from workflow.models import RunReport

logger = get_logger(__name__)


def is_executable(path: Path) -> bool:
    """Regular file with any execute bit set, excluding AppleDouble files."""
    if path.name.startswith(APPLEDOUBLE_PREFIX) or path.is_symlink() or not path.is_file():
        return False
    return bool(path.stat().st_mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))


def split_fat_binaries(
    changed_dir: Path,
    introspector: BinaryIntrospector,
    report: RunReport,
) -> list[Path]:
    """
    Write ``<name>.<arch>`` next to every executable holding more than one architecture.

    The fat original stays in place. Thin and non-executable files are left
    alone, so running this twice only rewrites the same thinned copies.

    Returns:
        Paths of the thinned files written
    """
    logger.info("Scanning for fat/universal binaries in changed output...")
    if not changed_dir.is_dir():
        return []

    binaries = [path for path in sorted(changed_dir.rglob("*")) if is_executable(path)]
    written: list[Path] = []

    for binary in binaries:
        archs = introspector.architectures(binary)
        if len(archs) < 2:
            continue

        logger.info(f"Found fat binary: {binary.relative_to(changed_dir)} ({', '.join(archs)})")
        for arch in archs:
            output = binary.with_name(f"{binary.name}.{arch}")
            try:
                introspector.thin(binary, arch, output)
            except ToolError as e:
                report.warn("lipo", f"Could not thin {binary.name} to {arch}: {e}")
                continue
            written.append(output)
            logger.debug(f"    → Wrote {output.name}")

    return written
