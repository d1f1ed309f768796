"""Housekeeping for the work dir and the changed tree."""

from pathlib import Path

from common.constants import APPLEDOUBLE_PREFIX
from common.logger import get_logger

from .cache_entry import CacheEntry

logger = get_logger(__name__)

# Disk images ipsw sometimes leaves behind after mounting
STRAY_IMAGE_PATTERNS = ("*.dmg", "*.aea")


def remove_appledouble(root: Path) -> int:
    """Delete macOS ``._*`` metadata files under ``root``; returns the count removed."""
    if not root.is_dir():
        return 0
    removed = 0
    for path in root.rglob(f"{APPLEDOUBLE_PREFIX}*"):
        if path.is_file():
            path.unlink()
            removed += 1
    if removed:
        logger.debug(f"Removed {removed} AppleDouble file(s) from {root}")
    return removed


def prune_empty_dirs(root: Path) -> int:
    """Remove empty directories below ``root`` (deepest first); ``root`` itself is kept."""
    if not root.is_dir():
        return 0
    removed = 0
    for path in sorted(root.rglob("*"), key=lambda p: len(p.parts), reverse=True):
        if path.is_dir() and not any(path.iterdir()):
            path.rmdir()
            removed += 1
    return removed


def remove_stray_images(workdir: Path) -> list[Path]:
    """Delete leftover mounted disk images directly inside ``workdir``."""
    removed = []
    for pattern in STRAY_IMAGE_PATTERNS:
        for path in sorted(workdir.glob(pattern)):
            if path.is_file():
                path.unlink()
                removed.append(path)
    for path in removed:
        logger.debug(f"Removed stray image {path.name}")
    return removed


def tidy_changed_tree(changed_dir: Path) -> None:
    remove_appledouble(changed_dir)
    prune_empty_dirs(changed_dir)


def reset_collected(changed_dir: Path, logs: tuple[Path, ...] = ()) -> None:
    """
    Start the changed tree and its provenance logs from scratch.

    Collected binaries are re-copied from the extraction caches on every run.
    """
    CacheEntry(changed_dir).invalidate()
    changed_dir.mkdir(parents=True, exist_ok=True)
    for log in logs:
        log.unlink(missing_ok=True)
