"""
Cached diff computation.

The diff JSON for a device and build pair lives at a deterministic path in
the work dir. It is reused when present, restored from a previously packaged
zip (single or split) when possible, and computed otherwise. A freshly
computed diff is packaged straight away so later runs on a fresh machine
can restore it instead of recomputing.
"""

import shutil
import tempfile
import zipfile
from enum import Enum
from pathlib import Path

from bundle.zip_utils import extract_flat, merge_parts, split_parts, zip_file
from common.constants import DIFF_BLOCK_LIST
from common.logger import get_logger
from extract.cache_entry import CacheEntry
from toolkit.base import DiffEngine
from workflow.errors import ToolError, ToolNotFoundError
from workflow.models import RunReport, WorkUnit

logger = get_logger(__name__)


class DiffSource(Enum):
    """Where the diff JSON used by a run came from."""

    EXISTING = "existing"
    ARCHIVE = "archive"
    SPLIT_ARCHIVE = "split_archive"
    COMPUTED = "computed"


def diff_json_path(unit: WorkUnit) -> Path:
    """diffs/diff_<device>_<old>_to_<new>.json"""
    return unit.subdir("diffs") / f"diff_{unit.device}_{unit.old.build_id}_to_{unit.new.build_id}.json"


def diff_zip_path(unit: WorkUnit) -> Path:
    return diff_json_path(unit).with_suffix(".zip")


def _restore_from(zip_path: Path, target: Path) -> bool:
    """Unpack ``target``'s file name from ``zip_path`` into place; False if it is not there."""
    entry = CacheEntry(target)
    with tempfile.TemporaryDirectory(dir=target.parent) as tmp:
        written = extract_flat(zip_path, Path(tmp))
        match = next((p for p in written if p.name == target.name), None)
        if match is None:
            return False
        with entry.building(as_file=True) as staging:
            shutil.move(str(match), str(staging))
    return entry.is_complete()


def restore_from_archive(unit: WorkUnit, report: RunReport | None = None) -> DiffSource | None:
    """
    Try to restore the diff JSON from a packaged copy.

    Returns:
        The source used, or None if nothing could be restored
    """
    target = diff_json_path(unit)
    zip_path = diff_zip_path(unit)
    parts = split_parts(zip_path)

    if zip_path.is_file() and not parts:
        logger.info(f"Found diff archive: {zip_path.name}")
        try:
            if _restore_from(zip_path, target):
                logger.info(f"[green]✓[/green] Restored {target.name} - skipping diff")
                return DiffSource.ARCHIVE
        except (OSError, zipfile.BadZipFile) as e:
            logger.debug(f"Archive restore error: {e}")
        _record(report, f"Failed to restore {target.name} from {zip_path.name}, regenerating")

    elif parts:
        logger.info(f"Found {len(parts)} split diff archive part(s) for {zip_path.name}")
        merged = zip_path.with_name(f"{zip_path.stem}-full.zip")
        try:
            merge_parts(zip_path, merged)
            if _restore_from(merged, target):
                logger.info(f"[green]✓[/green] Restored {target.name} - skipping diff")
                return DiffSource.SPLIT_ARCHIVE
        except (ToolError, ToolNotFoundError, OSError, zipfile.BadZipFile) as e:
            logger.debug(f"Split archive restore error: {e}")
        finally:
            if merged.exists():
                merged.unlink()
        _record(report, f"Failed to restore {target.name} from split archive, regenerating")

    return None


def _record(report: RunReport | None, message: str) -> None:
    logger.warning(message)
    if report is not None:
        report.warn("diff", message)


def compute_diff(
    unit: WorkUnit,
    old_firmware: Path,
    new_firmware: Path,
    engine: DiffEngine,
) -> Path:
    """
    Run the diff engine and move its JSON output to the deterministic path.

    Raises:
        ToolError: If the engine fails or produces no JSON
    """
    target = diff_json_path(unit)
    title = f"Diff {unit.device} {unit.old.build_id} vs {unit.new.build_id}"
    logger.info(f"Running diff: {title}")

    with tempfile.TemporaryDirectory(dir=target.parent, prefix="diff-run-") as tmp:
        engine.diff(old_firmware, new_firmware, Path(tmp), DIFF_BLOCK_LIST, title)

        generated = next(iter(sorted(Path(tmp).rglob("*.json"))), None)
        if generated is None:
            raise ToolError(f"Diff produced no JSON output for {title}")

        with CacheEntry(target).building(as_file=True) as staging:
            shutil.move(str(generated), str(staging))

    return target


def ensure_diff(
    unit: WorkUnit,
    old_firmware: Path,
    new_firmware: Path,
    engine: DiffEngine,
    force: bool = False,
    part_size: str = "99m",
    report: RunReport | None = None,
) -> tuple[Path, DiffSource]:
    """
    Return the diff JSON for ``unit``, computing it only when no cached copy exists.

    Resolution order: existing JSON (unless ``force``), single zip, split
    zip parts, then a fresh computation that is immediately packaged.

    Returns:
        Tuple of (diff JSON path, where it came from)
    """
    target = diff_json_path(unit)
    target.parent.mkdir(parents=True, exist_ok=True)

    if not force:
        if CacheEntry(target).is_complete():
            logger.info(f"Diff JSON already exists: {target.name} - skipping diff")
            return target, DiffSource.EXISTING

        restored = restore_from_archive(unit, report)
        if restored is not None:
            return target, restored
    elif target.exists():
        logger.info("Overwriting existing diff file as requested")

    compute_diff(unit, old_firmware, new_firmware, engine)

    try:
        zip_file(target, diff_zip_path(unit), part_size)
        logger.info(f"Packaged diff as {diff_zip_path(unit).name}")
    except (ToolError, ToolNotFoundError, OSError) as e:
        _record(report, f"Could not package {target.name} for reuse: {e}")

    return target, DiffSource.COMPUTED
