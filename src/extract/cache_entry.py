"""Cache entries with an explicit Missing/InProgress/Complete state.

An entry is a directory (or file) produced by an expensive step. Work goes
into a sibling ``<name>.partial`` staging path and is renamed into place
only once the step succeeded, so a crash or Ctrl-C can never leave behind
something that looks complete on the next run.

Usage:
    entry = CacheEntry(workdir / "extracted_full" / "new" / "arm64e")
    if not entry.is_complete():
        with entry.building() as staging:
            run_extractor(output_dir=staging)
"""

import json
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from common.logger import get_logger

logger = get_logger(__name__)

PARTIAL_SUFFIX = ".partial"
MANIFEST_NAME = ".cache-entry.json"


class EntryState(Enum):
    MISSING = "missing"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def has_content(path: Path, pattern: str = "*") -> bool:
    """True if ``path`` is a non-empty file, or a directory holding a file matching ``pattern``."""
    if path.is_file():
        return path.stat().st_size > 0
    if path.is_dir():
        return any(p.is_file() and p.name != MANIFEST_NAME for p in path.rglob(pattern))
    return False


class CacheEntry:
    """One cached output at a fixed path.

    Args:
        path: Final location of the output
        content_pattern: Glob a file must match for a directory to count
            as populated (e.g. "*.dylib" for a split shared cache)
    """

    def __init__(self, path: Path, content_pattern: str = "*"):
        self.path = path
        self.content_pattern = content_pattern

    @property
    def staging_path(self) -> Path:
        return self.path.with_name(self.path.name + PARTIAL_SUFFIX)

    def state(self) -> EntryState:
        if self.staging_path.exists():
            return EntryState.IN_PROGRESS
        if has_content(self.path, self.content_pattern):
            return EntryState.COMPLETE
        return EntryState.MISSING

    def is_complete(self) -> bool:
        return self.state() == EntryState.COMPLETE

    def manifest(self) -> dict | None:
        """Return the request recorded when the entry was completed, if any."""
        manifest_path = self.path / MANIFEST_NAME
        if not manifest_path.is_file():
            return None
        try:
            return json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None

    @contextmanager
    def building(self, manifest: dict | None = None, as_file: bool = False) -> Iterator[Path]:
        """Build the entry in a staging path and promote it on success.

        A leftover staging path from an interrupted run is discarded first.
        On any exception (KeyboardInterrupt included) the staging path is
        removed and the exception propagates; the final path is untouched.

        Args:
            manifest: Optional request description stored inside a directory entry
            as_file: Stage a single file instead of a directory

        Yields:
            Staging path to write into
        """
        staging = self.staging_path
        if staging.exists():
            logger.warning(f"Discarding interrupted output {staging.name}")
            _remove(staging)

        staging.parent.mkdir(parents=True, exist_ok=True)
        if not as_file:
            staging.mkdir()

        try:
            yield staging
            if not as_file and manifest is not None:
                (staging / MANIFEST_NAME).write_text(
                    json.dumps(manifest, indent=2, sort_keys=True), encoding="utf-8"
                )
        except BaseException:
            if staging.exists() or staging.is_symlink():
                _remove(staging)
            raise

        if self.path.exists():
            _remove(self.path)
        staging.rename(self.path)

    def invalidate(self) -> None:
        """Drop both the final output and any staging leftovers."""
        for path in (self.staging_path, self.path):
            if path.exists() or path.is_symlink():
                _remove(path)
