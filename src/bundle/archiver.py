"""Package the changed tree into the final size-split artifact."""

from pathlib import Path

from common.logger import get_logger
from workflow.models import WorkUnit

from .zip_utils import split_parts, zip_tree

logger = get_logger(__name__)

# Bulky and reproducible: extraction caches and firmware images
EXCLUDED_PREFIXES = ("extracted", "IPSW")


def artifact_name(unit: WorkUnit) -> str:
    """diff-<device>-<old>-<new>"""
    return f"diff-{unit.device}-{unit.old.build_id}-{unit.new.build_id}"


def artifact_path(unit: WorkUnit) -> Path:
    """The artifact sits next to the base directory, not inside it."""
    return unit.base_dir.parent / f"{artifact_name(unit)}.zip"


def build_artifact(unit: WorkUnit, part_size: str) -> Path:
    """
    Zip ``<device>/<old>-<new>`` (relative to the base dir) without the
    extraction caches, replacing any earlier artifact of the same name.

    Returns:
        Path to the artifact's .zip
    """
    root = unit.workdir.relative_to(unit.base_dir).as_posix()
    exclude = tuple(f"{root}/{prefix}*" for prefix in EXCLUDED_PREFIXES)
    target = artifact_path(unit)

    logger.info(f"Creating archive: {target.name}")
    zip_tree(unit.base_dir, root, target, part_size, exclude=exclude)

    parts = split_parts(target)
    if parts:
        logger.info(f"Archive split into {len(parts) + 1} part(s)")
    logger.info(f"[green]✓[/green] Wrote {target}")
    return target
