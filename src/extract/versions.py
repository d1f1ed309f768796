"""
Optional post-pass that tags changed binaries with version and arch.

Renames ``foo`` to ``foo-<source-version>_<arch>-<device>_<build>`` using the
binary's LC_SOURCE_VERSION and CPU type. Introspection is the slow part and
runs on a thread pool; the renames themselves run sequentially afterwards.
"""

import re
import string
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from common.constants import APPLEDOUBLE_PREFIX
from common.logger import get_logger
from toolkit.base import BinaryIntrospector, MachoInfo
from workflow.models import BuildRef, Side, WorkUnit

logger = get_logger(__name__)

VERSIONS_LOG_NAME = "versions.txt"


def _strip_trailing_punct(value: str) -> str:
    return value.rstrip(string.punctuation)


def version_suffix(info: MachoInfo, device: str, build: str) -> str | None:
    """Suffix for a binary, or None when version or arch is unknown."""
    if not info.source_version or not info.cpu:
        return None
    version = _strip_trailing_punct(re.sub(r"\s+", "_", info.source_version.strip()))
    arch = _strip_trailing_punct(info.cpu.strip())
    if not version or not arch:
        return None
    return f"-{version}_{arch}-{device}_{build}"


def tag_versions(
    unit: WorkUnit,
    side: Side,
    introspector: BinaryIntrospector,
    max_workers: int = 8,
) -> list[tuple[Path, Path]]:
    """
    Rename every file under ``changed/<side>`` with its version suffix.

    Files already carrying their suffix, or lacking version info, are
    skipped. Each rename is appended to ``metadata/versions.txt``.

    Returns:
        List of (old path, new path)
    """
    build: BuildRef = unit.build(side)
    side_dir = unit.subdir("changed") / side
    if not side_dir.is_dir():
        return []

    files = [
        p for p in sorted(side_dir.rglob("*"))
        if p.is_file() and not p.name.startswith(APPLEDOUBLE_PREFIX)
    ]
    logger.info(f"Reading version info for {len(files)} {side} file(s)...")

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        infos = list(pool.map(introspector.macho_info, files))

    log_path = unit.subdir("metadata") / VERSIONS_LOG_NAME
    renamed: list[tuple[Path, Path]] = []

    for path, info in zip(files, infos):
        suffix = version_suffix(info, unit.device, build.build_id)
        if suffix is None:
            logger.debug(f"[SKIP] Missing version or arch for: {path.name}")
            continue
        if path.name.endswith(suffix):
            logger.debug(f"[SKIP] Already renamed: {path.name}")
            continue

        target = path.with_name(path.name + suffix)
        path.rename(target)
        renamed.append((path, target))
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(f"{side}: {path.name} -> {target.name}\n")

    logger.info(f"Tagged {len(renamed)} {side} file(s) with version info")
    return renamed
