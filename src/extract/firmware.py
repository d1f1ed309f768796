"""
Per-architecture firmware extraction.

Each firmware image is extracted once per (side, architecture) into
``extracted_full/<side>/<arch>``, asking the extractor for everything the
change set needs in a single call. The request is recorded with the entry
so a later run asking for more (e.g. after a forced re-diff) extends the
extraction instead of trusting an incomplete one.
"""

from pathlib import Path

from common.logger import get_logger
from toolkit.base import ExtractionEngine, ExtractRequest
from workflow.errors import ToolError
from workflow.models import SIDES, ChangeSet, RunReport, Side, WorkUnit

from .cache_entry import CacheEntry

logger = get_logger(__name__)


def build_request(change_set: ChangeSet, arch: str) -> ExtractRequest:
    """Only ask for the kernel, shared cache or files when there is a change to look at."""
    return ExtractRequest(
        arch=arch,
        kernel=bool(change_set.kexts),
        dyld=bool(change_set.dylibs),
        files=tuple(change_set.machos),
    )


def extraction_root(unit: WorkUnit, side: Side) -> Path:
    return unit.subdir("extracted_full") / side


def extract_arch(
    firmware: Path,
    entry: CacheEntry,
    request: ExtractRequest,
    engine: ExtractionEngine,
) -> bool:
    """
    Bring one (side, arch) entry up to ``request``.

    Returns:
        True if the entry is complete afterwards

    Raises:
        ToolError: If the extractor fails (e.g. the image lacks this architecture)
    """
    if entry.is_complete():
        recorded = entry.manifest()
        if recorded is None:
            logger.info(f"  {request.arch}: already extracted - skipping")
            return True
        previous = ExtractRequest.from_dict(recorded)
        if previous.covers(request):
            logger.info(f"  {request.arch}: already extracted - skipping")
            return True
        logger.info(f"  {request.arch}: earlier extraction lacks requested content - re-extracting")
        request = previous.merge(request)

    logger.info(f"  Extracting {request.arch}...")
    with entry.building(manifest=request.as_dict()) as staging:
        engine.extract(firmware, staging, request)

    return entry.is_complete()


def extract_side(
    unit: WorkUnit,
    side: Side,
    firmware: Path,
    change_set: ChangeSet,
    architectures: tuple[str, ...],
    engine: ExtractionEngine,
    report: RunReport,
) -> dict[str, Path]:
    """
    Extract every architecture of one side's firmware.

    An architecture the image does not support is logged and skipped.

    Returns:
        Mapping of architecture to its extracted directory, for the
        architectures that produced output
    """
    logger.info(f"Preparing extraction for {side} firmware...")
    root = extraction_root(unit, side)
    root.mkdir(parents=True, exist_ok=True)

    extracted: dict[str, Path] = {}
    for arch in architectures:
        request = build_request(change_set, arch)
        entry = CacheEntry(root / arch)
        try:
            complete = extract_arch(firmware, entry, request, engine)
        except ToolError as e:
            message = f"{side}/{arch}: extraction failed ({arch} not found?): {e}"
            logger.warning(f"    ({arch} not found for {side})")
            report.warn("extract", message)
            continue

        if complete:
            extracted[arch] = entry.path
        else:
            report.warn("extract", f"{side}/{arch}: extractor produced no files")
            logger.warning(f"    {arch} produced no files for {side}")

    return extracted


def extract_all(
    unit: WorkUnit,
    firmware: dict[Side, Path],
    change_set: ChangeSet,
    architectures: tuple[str, ...],
    engine: ExtractionEngine,
    report: RunReport,
) -> dict[Side, dict[str, Path]]:
    """Run extract_side for the old and the new firmware."""
    if change_set.is_empty():
        logger.info("No code changes - nothing to extract")
        return {side: {} for side in SIDES}
    return {
        side: extract_side(unit, side, firmware[side], change_set, architectures, engine, report)
        for side in SIDES
    }
