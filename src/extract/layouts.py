"""
Where a file can end up inside an extracted firmware tree.

The extractor's output nesting differs between platforms and builds, e.g.

    extracted_full/new/arm64e/usr/bin/foo                      direct
    extracted_full/new/arm64e/25A354__MacOS/usr/bin/foo        nested build dir
    extracted_full/new/23A341__iPhone13,2_3/arm64e/usr/bin/foo build dir, then arch
    extracted_full/new/23A341__iPhone13,2_3/usr/bin/foo        flat build dir

Each layout is a strategy yielding candidate paths; resolution walks the
declared strategies in order and returns the first file that exists.
Supporting a new layout means adding a strategy to DEFAULT_LAYOUTS.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from pathlib import Path

from .cache_entry import PARTIAL_SUFFIX


def _subdirs(directory: Path, skip: frozenset[str] = frozenset()) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        d
        for d in directory.iterdir()
        if d.is_dir()
        and d.name not in skip
        and not d.name.startswith(".")
        and not d.name.endswith(PARTIAL_SUFFIX)
    )


class LayoutStrategy(ABC):
    """One way a firmware path can be laid out below a side's extraction root."""

    name: str = ""

    @abstractmethod
    def candidates(
        self, root: Path, arch: str, rel_path: str, architectures: frozenset[str]
    ) -> Iterator[Path]:
        """Yield candidate locations of ``rel_path`` for ``arch`` in priority order."""
        pass


class DirectArchLayout(LayoutStrategy):
    name = "arch"

    def candidates(self, root, arch, rel_path, architectures):
        yield root / arch / rel_path


class NestedBuildLayout(LayoutStrategy):
    """root/<arch>/<build-subdir>/<path>"""

    name = "arch/build"

    def candidates(self, root, arch, rel_path, architectures):
        for build_dir in _subdirs(root / arch):
            yield build_dir / rel_path


class BuildArchLayout(LayoutStrategy):
    """root/<build-subdir>/<arch>/<path>"""

    name = "build/arch"

    def candidates(self, root, arch, rel_path, architectures):
        for build_dir in _subdirs(root, skip=architectures):
            yield build_dir / arch / rel_path


class FlatBuildLayout(LayoutStrategy):
    """root/<build-subdir>/<path>"""

    name = "build"

    def candidates(self, root, arch, rel_path, architectures):
        for build_dir in _subdirs(root, skip=architectures):
            yield build_dir / rel_path


DEFAULT_LAYOUTS: tuple[LayoutStrategy, ...] = (
    DirectArchLayout(),
    NestedBuildLayout(),
    BuildArchLayout(),
    FlatBuildLayout(),
)


def resolve(
    root: Path,
    arch: str,
    rel_path: str,
    architectures: tuple[str, ...] = (),
    layouts: tuple[LayoutStrategy, ...] = DEFAULT_LAYOUTS,
) -> Path | None:
    """
    Locate ``rel_path`` for ``arch`` below ``root``.

    Args:
        root: A side's extraction root (extracted_full/<side>)
        arch: Architecture being resolved
        rel_path: Firmware path without leading slash
        architectures: All configured architectures; their directories are
            never mistaken for build subdirectories
        layouts: Strategies to try, in order

    Returns:
        The first existing file, or None
    """
    arch_names = frozenset(architectures) | {arch}
    for layout in layouts:
        for candidate in layout.candidates(root, arch, rel_path, arch_names):
            if candidate.is_file():
                return candidate
    return None
