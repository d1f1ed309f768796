"""Run metadata and CI side-channel outputs."""

from pathlib import Path

from common.env import env
from common.logger import get_logger
from toolkit.base import DownloadService
from workflow.errors import ToolError
from workflow.models import RunReport, Side, WorkUnit

from .advisories import AdvisoryError, SecurityUpdatesClient, read_build_info

logger = get_logger(__name__)

INFO_NAME = "info.txt"


def info_path(unit: WorkUnit) -> Path:
    return unit.subdir("metadata") / INFO_NAME


def _firmware_url(downloads: DownloadService, unit: WorkUnit, side: Side) -> str:
    try:
        return downloads.firmware_url(unit.build(side)) or "unknown"
    except ToolError as e:
        logger.debug(f"URL lookup failed for {side}: {e}")
        return "unknown"


def write_run_info(
    unit: WorkUnit,
    firmware: dict[Side, Path],
    downloads: DownloadService,
) -> Path:
    """Write the run summary block to metadata/info.txt, replacing any previous one."""
    lines = [
        f"OS Type: {unit.new.os_type}",
        f"Device: {unit.new.device_id}",
        f"OLD_BUILD: {unit.old.build_id}",
        f"NEW_BUILD: {unit.new.build_id}",
        f"Workdir: {unit.workdir}",
        f"Old IPSW Filename: {firmware['old'].name}",
        f"New IPSW Filename: {firmware['new'].name}",
        f"Old IPSW URL: {_firmware_url(downloads, unit, 'old')}",
        f"New IPSW URL: {_firmware_url(downloads, unit, 'new')}",
        "",
    ]
    path = info_path(unit)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def append_security_updates(
    unit: WorkUnit,
    firmware: dict[Side, Path],
    report: RunReport,
    client: SecurityUpdatesClient | None = None,
    url: str | None = None,
) -> int:
    """
    Append the matching security update title and URL for each side to info.txt.

    Best effort: every failure is logged and recorded, never raised.

    Returns:
        Number of sides for which an update was found
    """
    own_client = client is None
    client = client or SecurityUpdatesClient(url)
    labels = {"old": "OLD", "new": "NEW"}
    found = 0

    try:
        for side, label in labels.items():
            info = read_build_info(firmware[side])
            if info is None:
                report.warn("advisory", f"Could not extract version/build from {firmware[side].name}")
                continue

            logger.info(f"{label} ProductVersion: {info.product_version} ({info.build_version})")
            try:
                update = client.lookup(info.product_version)
            except AdvisoryError as e:
                report.warn("advisory", str(e))
                logger.warning(f"Security update lookup failed: {e}")
                continue

            if update is None:
                report.warn("advisory", f"No matching security update found for {info.product_version}")
                continue

            logger.info(f"{label} Security update page: {update.title}")
            with open(info_path(unit), "a", encoding="utf-8") as f:
                f.write(f"{label} ProductVersion: {info.product_version}\n")
                f.write(f"{label} ProductBuildVersion: {info.build_version}\n")
                f.write(f"{label} Security Update Title: {update.title}\n")
                f.write(f"{label} Security Update URL: {update.url}\n")
            found += 1
    finally:
        if own_client:
            client.close()

    return found


def write_outputs(outputs: dict[str, str], sink: Path | None = None) -> bool:
    """
    Append ``key=value`` lines to the CI output file (GITHUB_OUTPUT).

    Returns:
        False when no output file is designated
    """
    sink = sink or env.github_output()
    if sink is None:
        return False
    with open(sink, "a", encoding="utf-8") as f:
        for key, value in outputs.items():
            f.write(f"{key}={value}\n")
    return True
