"""Tests for the cached diff computation."""

import json
import os
import shutil

import pytest

from bundle.zip_utils import split_parts
from diff.cache import DiffSource, diff_json_path, diff_zip_path, ensure_diff
from workflow.models import RunReport

DOCUMENT = {
    "machos": {"updated": {"/usr/bin/log": "-  __TEXT.__text: 0x1000\n+  __TEXT.__text: 0x1040"}},
}

needs_zip = pytest.mark.skipif(shutil.which("zip") is None, reason="Info-ZIP not installed")


@pytest.fixture
def firmware(work_unit, make_firmware):
    return (
        make_firmware(work_unit.firmware_dir, "25A354"),
        make_firmware(work_unit.firmware_dir, "25B78"),
    )


def test_diff_path_is_deterministic(work_unit):
    path = diff_json_path(work_unit)
    assert path == work_unit.workdir / "diffs" / "diff_Mac14_3_25A354_to_25B78.json"
    assert diff_zip_path(work_unit).name == "diff_Mac14_3_25A354_to_25B78.zip"


def test_computes_and_packages_when_nothing_cached(work_unit, firmware, toolkit):
    toolkit.diff_document = DOCUMENT

    path, source = ensure_diff(work_unit, *firmware, toolkit)

    assert source == DiffSource.COMPUTED
    assert json.loads(path.read_text()) == DOCUMENT
    assert diff_zip_path(work_unit).is_file()
    assert len(toolkit.calls["diff"]) == 1
    _, _, block_list, title = toolkit.calls["diff"][0]
    assert block_list == ("__TEXT.__info_plist",)
    assert title == "Diff Mac14_3 25A354 vs 25B78"


def test_existing_diff_is_reused(work_unit, firmware, toolkit):
    toolkit.diff_document = DOCUMENT
    ensure_diff(work_unit, *firmware, toolkit)

    path, source = ensure_diff(work_unit, *firmware, toolkit)

    assert source == DiffSource.EXISTING
    assert len(toolkit.calls["diff"]) == 1


def test_restores_from_archive_byte_identical(work_unit, firmware, toolkit):
    toolkit.diff_document = DOCUMENT
    path, _ = ensure_diff(work_unit, *firmware, toolkit)
    original = path.read_bytes()
    path.unlink()

    restored, source = ensure_diff(work_unit, *firmware, toolkit)

    assert source == DiffSource.ARCHIVE
    assert restored.read_bytes() == original
    assert len(toolkit.calls["diff"]) == 1


def test_force_recomputes_once_despite_archive(work_unit, firmware, toolkit):
    toolkit.diff_document = DOCUMENT
    ensure_diff(work_unit, *firmware, toolkit)
    toolkit.diff_document = {"dylibs": {}}

    path, source = ensure_diff(work_unit, *firmware, toolkit, force=True)

    assert source == DiffSource.COMPUTED
    assert len(toolkit.calls["diff"]) == 2
    assert json.loads(path.read_text()) == {"dylibs": {}}


def test_corrupt_archive_falls_back_to_computation(work_unit, firmware, toolkit):
    toolkit.diff_document = DOCUMENT
    diff_zip_path(work_unit).write_bytes(b"not a zip")
    report = RunReport()

    path, source = ensure_diff(work_unit, *firmware, toolkit, report=report)

    assert source == DiffSource.COMPUTED
    assert json.loads(path.read_text()) == DOCUMENT
    assert any("Failed to restore" in w for w in report.warnings)


def test_interrupted_computation_leaves_nothing_behind(work_unit, firmware, toolkit, monkeypatch):
    def interrupted(*args, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr(toolkit, "diff", interrupted)

    with pytest.raises(KeyboardInterrupt):
        ensure_diff(work_unit, *firmware, toolkit)

    diffs = work_unit.subdir("diffs")
    assert list(diffs.iterdir()) == []


@needs_zip
def test_restores_from_split_parts(work_unit, firmware, toolkit):
    # Random hex barely compresses, so a 64k split yields several parts
    toolkit.diff_document = {"machos": {"updated": {"/usr/bin/big": os.urandom(200_000).hex()}}}
    path, _ = ensure_diff(work_unit, *firmware, toolkit, part_size="64k")
    assert split_parts(diff_zip_path(work_unit))
    original = path.read_bytes()
    path.unlink()

    restored, source = ensure_diff(work_unit, *firmware, toolkit, part_size="64k")

    assert source == DiffSource.SPLIT_ARCHIVE
    assert restored.read_bytes() == original
    assert len(toolkit.calls["diff"]) == 1
