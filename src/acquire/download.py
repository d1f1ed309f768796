"""Make sure both firmware images are available locally."""

import zipfile
from pathlib import Path

from common.constants import (
    APPLEDOUBLE_PREFIX,
    FIRMWARE_NAME_PATTERNS,
    GENERIC_FIRMWARE_PATTERN,
)
from common.logger import get_logger
from toolkit.base import DownloadService
from workflow.errors import AcquisitionError, ToolError
from workflow.models import BuildRef

logger = get_logger(__name__)


def firmware_pattern(build: BuildRef) -> str:
    """Glob matching the restore image file name for ``build``."""
    template = FIRMWARE_NAME_PATTERNS.get(build.os_type, GENERIC_FIRMWARE_PATTERN)
    return template.format(device=build.device_id, build=build.build_id)


def is_usable_firmware(path: Path) -> bool:
    """
    A firmware image is usable when it is a non-empty, complete zip.

    Restore images are zip archives; an interrupted download lacks the
    central directory and fails the zip check.
    """
    try:
        return path.is_file() and path.stat().st_size > 0 and zipfile.is_zipfile(path)
    except OSError:
        return False


def find_firmware(firmware_dir: Path, build: BuildRef) -> Path | None:
    """Return the first usable firmware image for ``build`` in ``firmware_dir``."""
    if not firmware_dir.is_dir():
        return None

    pattern = firmware_pattern(build)
    for path in sorted(firmware_dir.rglob(pattern)):
        if path.name.startswith(APPLEDOUBLE_PREFIX):
            continue
        if is_usable_firmware(path):
            return path
    return None


def ensure_firmware(build: BuildRef, firmware_dir: Path, downloads: DownloadService) -> Path:
    """
    Return the local firmware image for ``build``, downloading it if missing.

    Raises:
        AcquisitionError: If the download fails or no image is present afterwards
    """
    existing = find_firmware(firmware_dir, build)
    if existing is not None:
        logger.info(
            f"Firmware for {build.device_id} {build.build_id} already in {firmware_dir} "
            "- skipping download"
        )
        return existing

    logger.info(f"Downloading firmware for {build.device_id} {build.build_id}...")
    firmware_dir.mkdir(parents=True, exist_ok=True)
    try:
        downloads.download(build, firmware_dir)
    except ToolError as e:
        raise AcquisitionError(f"Download failed for build {build.build_id}: {e}") from e

    downloaded = find_firmware(firmware_dir, build)
    if downloaded is None:
        raise AcquisitionError(
            f"Firmware not found for build {build.build_id} "
            f"(expected {firmware_pattern(build)} in {firmware_dir})"
        )
    return downloaded

