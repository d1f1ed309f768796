"""
Compare two firmware builds and package the binaries whose code changed.

Stages run strictly in order; each one skips work whose output is already
complete in the work dir, so an interrupted or repeated run resumes cheaply:

1. Resolve the previous build (when not given)
2. Download missing firmware images
3. Diff the images (cached, restorable from a packaged copy)
4. Extract the change set (stop here in diff-only mode)
5. Extract firmware content per side and architecture
6. Extract and collect changed kexts
7. Split shared caches and collect changed dylibs
8. Resolve and collect changed standalone binaries
9. Thin fat binaries, optionally tag versions
10. Write metadata and the final archive
"""

from pathlib import Path

from acquire.download import ensure_firmware
from acquire.resolver import resolve_old_build
from bundle.archiver import artifact_name, build_artifact
from bundle.metadata import append_security_updates, write_outputs, write_run_info
from common.logger import get_logger, progress
from diff.cache import ensure_diff
from diff.changeset import load_change_set, write_change_lists
from extract.binaries import COPY_MAP_NAME, collect_machos
from extract.cleanup import (
    remove_appledouble,
    remove_stray_images,
    reset_collected,
    tidy_changed_tree,
)
from extract.firmware import extract_all
from extract.kernel import collect_kexts, extract_kexts
from extract.lipo import split_fat_binaries
from extract.shared_cache import collect_dylibs
from extract.versions import VERSIONS_LOG_NAME, tag_versions
from toolkit.base import Toolkit
from workflow.errors import DiffError, MissingInputError, ToolError, WorkflowError
from workflow.models import SIDES, BuildRef, RunConfig, RunReport, Side, WorkUnit

logger = get_logger(__name__)


def _log_parameters(config: RunConfig, unit: WorkUnit) -> None:
    progress("=== Using parameters ===")
    progress(f"OS Type: {config.os_type}")
    progress(f"Device: {config.device}")
    progress(f"OLD_BUILD: {unit.old.build_id}")
    progress(f"NEW_BUILD: {unit.new.build_id}")
    progress(f"Workdir: {unit.workdir}")
    progress(f"IPSW dir: {unit.firmware_dir}")


def prepare_work_unit(config: RunConfig, toolkit: Toolkit, report: RunReport) -> WorkUnit:
    """Resolve both builds and create the work dir."""
    if not config.new_build:
        raise MissingInputError("NEW_BUILD required")

    new = BuildRef(os_type=config.os_type, device_id=config.device, build_id=config.new_build)
    old = resolve_old_build(new, config.old_build, toolkit, report)

    unit = WorkUnit(old=old, new=new, base_dir=config.base_dir)
    unit.prepare()
    toolkit.set_working_dir(unit.workdir)
    return unit


def acquire_firmware(unit: WorkUnit, toolkit: Toolkit) -> dict[Side, Path]:
    firmware: dict[Side, Path] = {}
    for side in SIDES:
        logger.info(f"Checking for {side.upper()} firmware...")
        firmware[side] = ensure_firmware(unit.build(side), unit.firmware_dir, toolkit)
        logger.info(f"{side.upper()} firmware: {firmware[side].name}")
    remove_appledouble(unit.workdir)
    return firmware


def run(config: RunConfig, toolkit: Toolkit) -> RunReport:
    """
    Run the whole workflow for one build pair.

    A fatal precondition failure stops the run and is recorded on the
    report rather than raised.

    Args:
        config: Immutable run settings
        toolkit: External tool collaborators

    Returns:
        RunReport with recoverable warnings, the side-channel outputs and,
        when the run was aborted, the fatal error
    """
    report = RunReport()
    try:
        _run_stages(config, toolkit, report)
    except WorkflowError as e:
        logger.error(f"Aborting: {e}")
        report.fail(e)
    return report


def _run_stages(config: RunConfig, toolkit: Toolkit, report: RunReport) -> None:
    unit = prepare_work_unit(config, toolkit, report)
    _log_parameters(config, unit)

    firmware = acquire_firmware(unit, toolkit)

    try:
        diff_json, source = ensure_diff(
            unit,
            firmware["old"],
            firmware["new"],
            toolkit,
            force=config.force_diff,
            part_size=config.diff_part_size,
            report=report,
        )
    except ToolError as e:
        raise DiffError(f"Diff failed: {e}") from e
    logger.info(f"Diff JSON ({source.value}): {diff_json}")

    report.output("diff_path", str(diff_json))
    report.output("old_build", unit.old.build_id)

    if config.diff_only:
        logger.info("Diff-only mode - exiting after diff generation")
        write_outputs(report.outputs)
        return

    change_set = load_change_set(diff_json)
    write_change_lists(change_set, unit.workdir)

    changed_dir = unit.subdir("changed")
    metadata_dir = unit.subdir("metadata")
    reset_collected(
        changed_dir, logs=(metadata_dir / COPY_MAP_NAME, metadata_dir / VERSIONS_LOG_NAME)
    )

    extracted = extract_all(unit, firmware, change_set, config.architectures, toolkit, report)

    if change_set.kexts:
        kext_dirs = extract_kexts(unit, extracted, toolkit, report)
        report.artifacts += collect_kexts(unit, change_set.kexts, kext_dirs, config.architectures, report)

    if change_set.dylibs:
        report.artifacts += collect_dylibs(
            unit, change_set.dylibs, extracted, config.architectures, toolkit, report
        )

    if change_set.machos:
        report.artifacts += collect_machos(unit, change_set.machos, config.architectures, report)

    remove_stray_images(unit.workdir)

    tidy_changed_tree(changed_dir)
    split_fat_binaries(changed_dir, toolkit, report)

    if config.tag_versions:
        for side in SIDES:
            tag_versions(unit, side, toolkit)

    tidy_changed_tree(changed_dir)

    write_run_info(unit, firmware, toolkit)
    if config.security_updates_url:
        append_security_updates(unit, firmware, report, url=config.security_updates_url)

    archive = build_artifact(unit, config.archive_part_size)
    report.output("artifact_path", str(archive))
    report.output("artifact_name", artifact_name(unit))

    write_outputs(report.outputs)

    logger.info(
        f"[green]✓[/green] Collected [bold]{len(report.artifacts)}[/bold] changed artifact(s) "
        f"with {len(report.warnings)} warning(s)"
    )
