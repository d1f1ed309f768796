"""Zip archive helpers for size-split packaging.

Archives that fit in one part are written and read with ``zipfile``.
Larger ones are handed to Info-ZIP (``zip -s``), which writes
``name.z01``, ``name.z02``, ... plus the final ``name.zip``; reading those
back first merges the parts with ``zip -s 0``.
"""

import fnmatch
import re
import shutil
import subprocess
import zipfile
from pathlib import Path

from common.env import env
from common.logger import get_logger
from workflow.errors import ToolError, ToolNotFoundError

logger = get_logger(__name__)

_SIZE_RE = re.compile(r"^\s*(\d+)\s*([kmgt]?)b?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1024**2, "k": 1024, "m": 1024**2, "g": 1024**3, "t": 1024**4}


def parse_part_size(value: str) -> int:
    """
    Convert a zip -s size ("99m", "1900m", "2g") to bytes.

    A bare number means megabytes, as it does for zip.

    Raises:
        ValueError: If the size is not understood
    """
    match = _SIZE_RE.match(value)
    if not match:
        raise ValueError(f"Invalid split size: {value!r}")
    return int(match.group(1)) * _SIZE_UNITS[match.group(2).lower()]


def split_parts(zip_path: Path) -> list[Path]:
    """Return the ``.zNN`` parts belonging to ``zip_path``, in order."""
    pattern = re.compile(re.escape(zip_path.stem) + r"\.z(\d{2,})$")
    parts = []
    if zip_path.parent.is_dir():
        for path in zip_path.parent.iterdir():
            match = pattern.match(path.name)
            if match and path.is_file():
                parts.append((int(match.group(1)), path))
    return [path for _, path in sorted(parts)]


def remove_archive(zip_path: Path) -> None:
    """Delete ``zip_path`` and all of its split parts."""
    for part in split_parts(zip_path):
        part.unlink()
    if zip_path.exists():
        zip_path.unlink()


def _run_zip(args: list[str], cwd: Path | None = None) -> None:
    zip_bin = env.zip_bin()
    cmd = [zip_bin, *args]
    logger.debug(f"$ {' '.join(cmd)}")
    try:
        subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, check=True)
    except FileNotFoundError as e:
        raise ToolNotFoundError(f"Required tool '{zip_bin}' not found") from e
    except subprocess.CalledProcessError as e:
        raise ToolError(
            f"zip failed with exit code {e.returncode}: {(e.stderr or '').strip()}",
            returncode=e.returncode,
            stderr=e.stderr or "",
        ) from e


def _is_excluded(arcname: str, exclude: tuple[str, ...]) -> bool:
    return any(fnmatch.fnmatchcase(arcname, pattern) for pattern in exclude)


def _collect_tree(base: Path, root: str, exclude: tuple[str, ...]) -> list[tuple[Path, str]]:
    members = []
    for path in sorted((base / root).rglob("*")):
        if not path.is_file():
            continue
        arcname = path.relative_to(base).as_posix()
        if _is_excluded(arcname, exclude):
            continue
        members.append((path, arcname))
    return members


def _write_single(zip_path: Path, members: list[tuple[Path, str]]) -> None:
    staging = zip_path.with_name(zip_path.name + ".partial")
    try:
        with zipfile.ZipFile(staging, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path, arcname in members:
                zf.write(path, arcname)
    except BaseException:
        if staging.exists():
            staging.unlink()
        raise
    staging.replace(zip_path)


def zip_file(source: Path, zip_path: Path, part_size: str) -> Path:
    """
    Package a single file (stored without its directory) into ``zip_path``.

    Any previous archive of the same name, parts included, is replaced.

    Returns:
        Path to the ``.zip`` (the last part when split)
    """
    remove_archive(zip_path)
    zip_path.parent.mkdir(parents=True, exist_ok=True)

    if source.stat().st_size <= parse_part_size(part_size):
        _write_single(zip_path, [(source, source.name)])
    else:
        _run_zip(["-j", "-s", part_size, str(zip_path.resolve()), str(source.resolve())])

    logger.debug(f"Packaged {source.name} -> {zip_path.name} ({len(split_parts(zip_path))} extra part(s))")
    return zip_path


def zip_tree(
    base: Path,
    root: str,
    zip_path: Path,
    part_size: str,
    exclude: tuple[str, ...] = (),
) -> Path:
    """
    Package ``base/root`` recursively, storing paths relative to ``base``.

    Args:
        base: Directory archive paths are relative to
        root: Relative directory to package
        zip_path: Output archive
        part_size: zip -s split size
        exclude: Wildcard patterns on archive paths to leave out (zip -x syntax)

    Returns:
        Path to the ``.zip`` (the last part when split)
    """
    remove_archive(zip_path)
    zip_path.parent.mkdir(parents=True, exist_ok=True)

    members = _collect_tree(base, root, exclude)
    total = sum(path.stat().st_size for path, _ in members)

    if total <= parse_part_size(part_size):
        _write_single(zip_path, members)
    else:
        args = ["-r", "-s", part_size, str(zip_path.resolve()), root]
        for pattern in exclude:
            args += ["-x", pattern]
        _run_zip(args, cwd=base)

    return zip_path


def merge_parts(zip_path: Path, out_path: Path) -> Path:
    """Reassemble a split archive into one ordinary zip (zip -s 0)."""
    if out_path.exists():
        out_path.unlink()
    _run_zip(["-s", "0", str(zip_path.resolve()), "--out", str(out_path.resolve())])
    return out_path


def extract_flat(zip_path: Path, dest: Path) -> list[Path]:
    """
    Extract every file member into ``dest`` without its directory (unzip -j -o).

    Returns:
        Paths written

    Raises:
        zipfile.BadZipFile: If the archive is corrupt or a lone split part
    """
    dest.mkdir(parents=True, exist_ok=True)
    written = []
    with zipfile.ZipFile(zip_path) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            target = dest / Path(info.filename).name
            with zf.open(info) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
            written.append(target)
    return written
