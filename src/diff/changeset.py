"""Turn a diff document into the lists of binaries whose code changed."""

import json
from pathlib import Path

from common.constants import CHANGE_CATEGORIES, TEXT_CHANGE_MARKERS
from common.logger import get_logger
from workflow.models import ChangeSet

logger = get_logger(__name__)


def changed_paths(diff: dict, category: str) -> list[str]:
    """
    Paths in ``category`` whose diff text shows an executable-section change.

    Only ``<category>.updated`` entries are considered. Order follows the
    document and duplicates are dropped. A missing or empty category
    yields an empty list.

    Args:
        diff: Parsed diff document
        category: One of "kexts", "dylibs", "machos"

    Returns:
        List of changed paths
    """
    marker = TEXT_CHANGE_MARKERS[category]
    section = diff.get(category)
    updated = section.get("updated") if isinstance(section, dict) else None
    if not isinstance(updated, dict):
        return []

    paths: list[str] = []
    seen: set[str] = set()
    for path, summary in updated.items():
        if not isinstance(summary, str) or marker not in summary:
            continue
        if path in seen:
            continue
        seen.add(path)
        paths.append(path)
    return paths


def extract_change_set(diff: dict) -> ChangeSet:
    """Build the ChangeSet for all three categories."""
    return ChangeSet(**{category: changed_paths(diff, category) for category in CHANGE_CATEGORIES})


def load_change_set(diff_json: Path) -> ChangeSet:
    """Read a diff JSON file and extract its ChangeSet."""
    with open(diff_json, encoding="utf-8") as f:
        diff = json.load(f)
    change_set = extract_change_set(diff)
    logger.info(
        f"Code changes: [bold]{len(change_set.kexts)}[/bold] kext(s), "
        f"[bold]{len(change_set.dylibs)}[/bold] dylib(s), "
        f"[bold]{len(change_set.machos)}[/bold] macho(s)"
    )
    return change_set


def write_change_lists(change_set: ChangeSet, workdir: Path) -> dict[str, Path]:
    """
    Write kexts.txt, dylibs.txt and machos.txt (one path per line) into ``workdir``.

    Returns:
        Mapping of category to written file
    """
    written = {}
    for category in CHANGE_CATEGORIES:
        paths = getattr(change_set, category)
        out = workdir / f"{category}.txt"
        out.write_text("".join(f"{p}\n" for p in paths), encoding="utf-8")
        written[category] = out
    return written
