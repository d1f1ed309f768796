"""Infer the previous build when only the new one is given."""

import re
from pathlib import PurePosixPath
from urllib.parse import urlparse

from common.logger import get_logger
from toolkit.base import DownloadService
from workflow.errors import ResolutionError, ToolError
from workflow.models import BuildRef, RunReport

logger = get_logger(__name__)

# Apple build ids: major number, train letter, build number, optional suffix (20D91, 23A5276g)
_BUILD_RE = re.compile(r"^(\d+)([A-Z])(\d+)([a-z]*)$")


def build_id_from_reference(reference: str) -> str:
    """
    Get the build id out of a download reference.

    Firmware URLs end in ``<Product>_<version>_<build>_Restore.ipsw``, where
    the product part may itself contain underscores
    (``Apple_Vision_Pro_1.1_21O211_Restore.ipsw``), so the build is the field
    right before ``Restore``. Other references use their last field shaped
    like a build id, or are taken to be a bare build id.

    Example:
        >>> build_id_from_reference(".../UniversalMac_14.4_23E214_Restore.ipsw")
        '23E214'
    """
    name = PurePosixPath(urlparse(reference.strip()).path or reference.strip()).name
    fields = name.split("_")
    if len(fields) >= 2 and fields[-1].startswith("Restore"):
        return fields[-2]
    builds = [field for field in fields if _BUILD_RE.match(field)]
    if builds:
        return builds[-1]
    return name


def build_sort_key(build_id: str) -> tuple | None:
    """Ordering key for a build id, or None if it does not look like one."""
    match = _BUILD_RE.match(build_id)
    if not match:
        return None
    major, train, number, suffix = match.groups()
    return (int(major), train, int(number), suffix)


def resolve_old_build(
    new: BuildRef,
    old_build: str | None,
    downloads: DownloadService,
    report: RunReport | None = None,
) -> BuildRef:
    """
    Return the old side of the comparison.

    When ``old_build`` is given it is used as is. Otherwise the device's
    build listing is fetched and the entry right after the new build is
    taken as the previous release. Listing adjacency is the policy; the
    ids are compared afterwards only to flag a listing that does not look
    newest-first.

    Raises:
        ResolutionError: If the listing cannot be fetched, does not contain
            the new build, or has no entry after it
    """
    if old_build:
        return BuildRef(os_type=new.os_type, device_id=new.device_id, build_id=old_build)

    logger.info(f"OLD_BUILD not supplied - inferring from {new.build_id} using the build listing...")

    try:
        references = downloads.list_build_urls(new.device_id)
    except ToolError as e:
        raise ResolutionError(f"Failed to fetch build list for {new.device_id}: {e}") from e

    builds = [build_id_from_reference(ref) for ref in references if ref.strip()]

    try:
        position = builds.index(new.build_id)
    except ValueError:
        raise ResolutionError(f"NEW_BUILD {new.build_id} not found in build list") from None

    # The same build can be listed more than once; skip to the next distinct one
    previous = next((b for b in builds[position + 1 :] if b != new.build_id), None)
    if previous is None:
        raise ResolutionError(f"No previous build found for {new.build_id}")

    new_key, previous_key = build_sort_key(new.build_id), build_sort_key(previous)
    if new_key and previous_key and previous_key > new_key:
        message = (
            f"Inferred previous build {previous} sorts after {new.build_id}; "
            "the build listing may not be newest-first"
        )
        logger.warning(message)
        if report is not None:
            report.warn("resolve", message)

    logger.info(f"Inferred OLD_BUILD: [bold]{previous}[/bold]")
    return BuildRef(os_type=new.os_type, device_id=new.device_id, build_id=previous)
