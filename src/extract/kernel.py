"""Kernel extension extraction and collection."""

import shutil
from pathlib import Path

from common.logger import get_logger
from toolkit.base import KernelExtractor
from workflow.errors import KernelImageError, ToolError
from workflow.models import SIDES, ChangedArtifact, RunReport, Side, WorkUnit

from .cache_entry import CacheEntry
from .paths import relative

logger = get_logger(__name__)

KERNELCACHE_GLOB = "kernelcache.release.*"


def find_kernelcache(arch_dir: Path, max_depth: int = 2) -> Path | None:
    """Find the release kernelcache at most ``max_depth`` levels below ``arch_dir``."""
    if not arch_dir.is_dir():
        return None
    candidates = [
        path
        for path in arch_dir.rglob(KERNELCACHE_GLOB)
        if path.is_file() and len(path.relative_to(arch_dir).parts) <= max_depth
    ]
    return sorted(candidates)[0] if candidates else None


def kexts_dir(unit: WorkUnit, side: Side, arch: str) -> Path:
    return unit.subdir("extracted") / side / f"kexts_{arch}"


def extract_kexts(
    unit: WorkUnit,
    extracted: dict[Side, dict[str, Path]],
    extractor: KernelExtractor,
    report: RunReport,
) -> dict[Side, dict[str, Path]]:
    """
    Split every located kernelcache into its kexts, once per side and architecture.

    Every architecture that extracted successfully is expected to contain a
    kernelcache; a side with no extracted architecture at all counts as
    missing too.

    Returns:
        Mapping side -> arch -> directory holding the extracted kexts

    Raises:
        KernelImageError: If a kernelcache cannot be located
    """
    logger.info("Extracting KEXTs from kernelcache...")
    outputs: dict[Side, dict[str, Path]] = {side: {} for side in SIDES}

    for side in SIDES:
        arch_dirs = extracted.get(side) or {}
        if not arch_dirs:
            raise KernelImageError(f"No kernelcache found for {side}: no architecture was extracted")

        for arch, arch_dir in arch_dirs.items():
            kernelcache = find_kernelcache(arch_dir)
            if kernelcache is None:
                raise KernelImageError(f"No kernelcache found for {side}/{arch}")

            entry = CacheEntry(kexts_dir(unit, side, arch))
            if entry.is_complete():
                logger.info(f"  KEXTs already extracted for {side}/{arch} - skipping")
            else:
                logger.info(f"  Extracting KEXTs from {kernelcache.name} ({side}/{arch})...")
                try:
                    with entry.building() as staging:
                        extractor.extract_kexts(kernelcache, staging)
                except ToolError as e:
                    report.warn("kexts", f"{side}/{arch}: kext extraction failed: {e}")
                    logger.warning(f"  KEXT extraction failed for {side}/{arch}")
                    continue

            if entry.is_complete():
                outputs[side][arch] = entry.path

    return outputs


def find_kext(kext_root: Path, kext: str) -> Path | None:
    """Locate a changed kext path inside an extracted kext directory."""
    rel = relative(kext)
    direct = kext_root / rel
    if direct.is_file():
        return direct
    suffix = "/" + rel
    for path in sorted(kext_root.rglob(Path(rel).name)):
        if path.is_file() and ("/" + path.relative_to(kext_root).as_posix()).endswith(suffix):
            return path
    return None


def collect_kexts(
    unit: WorkUnit,
    kexts: list[str],
    kext_dirs: dict[Side, dict[str, Path]],
    architectures: tuple[str, ...],
    report: RunReport,
) -> list[ChangedArtifact]:
    """
    Copy changed kexts into ``changed/<side>/kexts/<arch>/<path>``.

    The first architecture (in priority order) holding the kext wins.
    """
    logger.info(f"Copying {len(kexts)} changed KEXT(s)...")
    changed = unit.subdir("changed")
    artifacts: list[ChangedArtifact] = []

    for kext in kexts:
        missing_sides = []
        for side in SIDES:
            found = None
            for arch in architectures:
                root = kext_dirs.get(side, {}).get(arch)
                if root is None:
                    continue
                source = find_kext(root, kext)
                if source is not None:
                    found = ChangedArtifact(side=side, arch=arch, relative_path=relative(kext), source=source)
                    break

            if found is None:
                missing_sides.append(side)
                continue

            dest = changed / side / "kexts" / found.arch / found.relative_path
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(found.source, dest)
            artifacts.append(found)

        if missing_sides:
            message = f"{kext} not found for {', '.join(missing_sides)} in any kernelcache"
            logger.warning(message)
            report.warn("kexts", message)

    return artifacts
