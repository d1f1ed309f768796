"""Split dyld_shared_cache images and collect the changed dylibs."""

import shutil
from pathlib import Path

from common.logger import get_logger
from toolkit.base import SharedCacheSplitter
from workflow.errors import ToolError
from workflow.models import SIDES, ChangedArtifact, RunReport, Side, WorkUnit

from .cache_entry import CacheEntry
from .paths import relative

logger = get_logger(__name__)


def find_shared_cache(arch_dir: Path, arch: str) -> Path | None:
    """
    Find ``dyld_shared_cache_<arch>`` inside one architecture's extraction.

    The search never leaves ``arch_dir``, so a cache left over from another
    architecture's extraction cannot be picked up. Subcache files
    (``.01``, ``.symbols``) are not matched.
    """
    if not arch_dir.is_dir():
        return None
    name = f"dyld_shared_cache_{arch}"
    matches = [path for path in arch_dir.rglob(name) if path.is_file()]
    return sorted(matches)[0] if matches else None


def split_dir(unit: WorkUnit, side: Side, arch: str) -> Path:
    return unit.subdir("extracted") / side / f"dylibs_all_{arch}"


def split_shared_cache(
    unit: WorkUnit,
    side: Side,
    arch: str,
    arch_dir: Path,
    splitter: SharedCacheSplitter,
    report: RunReport,
) -> Path | None:
    """
    Split one side/arch shared cache unless already split.

    Returns:
        Directory holding the split libraries, or None if there is no
        shared cache for this architecture or the split failed
    """
    shared_cache = find_shared_cache(arch_dir, arch)
    if shared_cache is None:
        message = f"No dyld_shared_cache for {arch} found for {side} - skipping"
        logger.warning(f"    {message}")
        report.warn("dylibs", message)
        return None

    entry = CacheEntry(split_dir(unit, side, arch), content_pattern="*.dylib")
    if entry.is_complete():
        logger.info(f"    Already split for {arch} - skipping split step")
        return entry.path

    logger.info(f"    Splitting dyld_shared_cache for {arch}...")
    try:
        with entry.building() as staging:
            splitter.split(shared_cache, staging)
    except ToolError as e:
        report.warn("dylibs", f"{side}/{arch}: shared cache split failed: {e}")
        logger.warning(f"    Split failed for {side}/{arch}")
        return None

    return entry.path if entry.is_complete() else None


def collect_dylibs(
    unit: WorkUnit,
    dylibs: list[str],
    extracted: dict[Side, dict[str, Path]],
    architectures: tuple[str, ...],
    splitter: SharedCacheSplitter,
    report: RunReport,
) -> list[ChangedArtifact]:
    """
    Split each side's shared caches and copy changed dylibs to
    ``changed/<side>/dylibs/<arch>/<path>``.

    A dylib is copied for every architecture whose cache contains it; one
    missing from a given architecture is simply skipped there.
    """
    changed = unit.subdir("changed")
    artifacts: list[ChangedArtifact] = []

    for side in SIDES:
        logger.info(f"Processing dyld_shared_cache for {side}...")
        found_any: set[str] = set()

        for arch in architectures:
            arch_dir = extracted.get(side, {}).get(arch)
            if arch_dir is None:
                logger.debug(f"  {side}/{arch} was not extracted")
                continue

            logger.info(f"  Processing {arch}...")
            libs_dir = split_shared_cache(unit, side, arch, arch_dir, splitter, report)
            if libs_dir is None:
                continue

            copied = 0
            for dylib in dylibs:
                rel = relative(dylib)
                source = libs_dir / rel
                if not source.is_file():
                    continue
                dest = changed / side / "dylibs" / arch / rel
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, dest)
                artifacts.append(ChangedArtifact(side=side, arch=arch, relative_path=rel, source=source))
                found_any.add(rel)
                copied += 1
            logger.info(f"  Copied {copied}/{len(dylibs)} dylib(s) for {side}/{arch}")

        missing = [d for d in dylibs if relative(d) not in found_any]
        if missing:
            message = f"{len(missing)} changed dylib(s) not found in any {side} shared cache"
            logger.warning(message)
            report.warn("dylibs", message)

    return artifacts
