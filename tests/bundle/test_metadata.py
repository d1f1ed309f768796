"""Tests for run metadata and CI outputs."""

from unittest.mock import Mock

import pytest

from bundle.advisories import AdvisoryError, SecurityUpdate
from bundle.metadata import append_security_updates, info_path, write_outputs, write_run_info
from workflow.errors import ToolError
from workflow.models import RunReport


@pytest.fixture
def firmware(work_unit, make_firmware):
    return {
        "old": make_firmware(work_unit.firmware_dir, "25A354"),
        "new": make_firmware(work_unit.firmware_dir, "25B78"),
    }


def test_run_info(work_unit, firmware, toolkit):
    path = write_run_info(work_unit, firmware, toolkit)

    text = path.read_text()
    assert "Device: Mac14,3" in text
    assert "OLD_BUILD: 25A354" in text
    assert "New IPSW Filename: UniversalMac_26.1_25B78_Restore.ipsw" in text
    assert "Old IPSW URL: https://updates.example.com/UniversalMac_26.0_25A354_Restore.ipsw" in text


def test_run_info_is_replaced(work_unit, firmware, toolkit):
    write_run_info(work_unit, firmware, toolkit)
    write_run_info(work_unit, firmware, toolkit)
    assert info_path(work_unit).read_text().count("OS Type:") == 1


def test_unknown_url(work_unit, firmware, toolkit, monkeypatch):
    def broken(build):
        raise ToolError("offline", returncode=1)

    monkeypatch.setattr(toolkit, "firmware_url", broken)
    text = write_run_info(work_unit, firmware, toolkit).read_text()
    assert "New IPSW URL: unknown" in text


def test_security_updates_appended(work_unit, firmware, toolkit):
    write_run_info(work_unit, firmware, toolkit)
    client = Mock()
    client.lookup.side_effect = lambda version: SecurityUpdate(
        title=f"macOS Tahoe {version}", url=f"https://support.apple.com/{version}"
    )
    report = RunReport()

    assert append_security_updates(work_unit, firmware, report, client=client) == 2

    text = info_path(work_unit).read_text()
    assert "OLD ProductVersion: 26.0" in text
    assert "NEW Security Update Title: macOS Tahoe 26.1" in text
    assert "NEW Security Update URL: https://support.apple.com/26.1" in text
    client.close.assert_not_called()


def test_security_update_failures_are_warnings(work_unit, firmware, toolkit):
    write_run_info(work_unit, firmware, toolkit)
    client = Mock()
    client.lookup.side_effect = [AdvisoryError("Timed out"), None]
    report = RunReport()

    assert append_security_updates(work_unit, firmware, report, client=client) == 0
    assert len(report.warnings) == 2
    assert "Security Update" not in info_path(work_unit).read_text()


def test_write_outputs(tmp_path):
    sink = tmp_path / "github_output"
    sink.write_text("existing=1\n")

    assert write_outputs({"old_build": "25A354", "zip_path": "/tmp/a.zip"}, sink)

    assert sink.read_text() == "existing=1\nold_build=25A354\nzip_path=/tmp/a.zip\n"


def test_write_outputs_without_sink(monkeypatch):
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
    assert write_outputs({"old_build": "25A354"}) is False
