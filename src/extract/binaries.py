"""Resolve changed standalone binaries in the extracted trees and collect them."""

import shutil

from common.logger import get_logger
from workflow.models import SIDES, ChangedArtifact, RunReport, WorkUnit

from .firmware import extraction_root
from .layouts import DEFAULT_LAYOUTS, LayoutStrategy, resolve
from .paths import PathSet, relative

logger = get_logger(__name__)

COPY_MAP_NAME = "macho_copy_map.txt"


def collect_machos(
    unit: WorkUnit,
    machos: list[str],
    architectures: tuple[str, ...],
    report: RunReport,
    layouts: tuple[LayoutStrategy, ...] = DEFAULT_LAYOUTS,
) -> list[ChangedArtifact]:
    """
    Copy each changed binary to ``changed/<side>/machos/<arch>/<path>``.

    For every side the architectures are tried in priority order and the
    first one that resolves wins. Each copy is recorded in
    ``metadata/macho_copy_map.txt``. A binary that resolves for no
    architecture is left out and reported once.

    Returns:
        The artifacts copied
    """
    paths = PathSet(machos)
    logger.info(f"Copying {len(paths)} changed MACHO(s)...")

    changed = unit.subdir("changed")
    copy_map = unit.subdir("metadata") / COPY_MAP_NAME
    copy_map.parent.mkdir(parents=True, exist_ok=True)
    copy_map.write_text("", encoding="utf-8")

    artifacts: list[ChangedArtifact] = []
    missing: dict[str, list[str]] = {}

    for side in SIDES:
        root = extraction_root(unit, side)
        for macho in paths:
            rel = relative(macho)
            artifact = None
            for arch in architectures:
                source = resolve(root, arch, rel, architectures, layouts)
                if source is not None:
                    artifact = ChangedArtifact(side=side, arch=arch, relative_path=rel, source=source)
                    break

            if artifact is None:
                missing.setdefault(macho, []).append(side)
                continue

            dest = changed / side / "machos" / artifact.arch / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(artifact.source, dest)
            with open(copy_map, "a", encoding="utf-8") as f:
                f.write(artifact.map_line() + "\n")
            artifacts.append(artifact)

    for macho, sides in missing.items():
        message = f"{macho} not found for {', '.join(sides)} in any arch dir"
        logger.warning(message)
        report.warn("machos", message)

    return artifacts
