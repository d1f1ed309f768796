"""Sets of firmware-relative paths."""

import re
from collections.abc import Iterable, Iterator


def relative(path: str) -> str:
    """Strip the leading slash so a firmware path can be joined under a directory."""
    return path.strip().lstrip("/")


class PathSet:
    """An ordered, de-duplicated set of firmware paths.

    Membership is by normalized path, so "/usr/bin/foo" and "usr/bin/foo"
    are the same entry. The original spelling of the first occurrence is
    kept for display and for the extraction pattern.
    """

    def __init__(self, paths: Iterable[str] = ()):
        self._paths: dict[str, str] = {}
        for path in paths:
            self.add(path)

    def add(self, path: str) -> None:
        key = relative(path)
        if key and key not in self._paths:
            self._paths[key] = path.strip()

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and relative(path) in self._paths

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths.values())

    def __len__(self) -> int:
        return len(self._paths)

    def __bool__(self) -> bool:
        return bool(self._paths)

    def relative_paths(self) -> list[str]:
        return list(self._paths)

    def issuperset(self, other: "PathSet") -> bool:
        return all(key in self._paths for key in other._paths)

    def union(self, other: "PathSet") -> "PathSet":
        return PathSet([*self, *other])

    def to_pattern(self) -> str | None:
        """
        Regex matching any member, for extractors that filter by pattern.

        Every path is escaped literally; None when the set is empty.
        """
        if not self._paths:
            return None
        return "|".join(re.escape(path) for path in self)
