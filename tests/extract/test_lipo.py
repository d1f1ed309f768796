"""Tests for thinning universal binaries."""

from extract.lipo import is_executable, split_fat_binaries
from workflow.errors import ToolError
from workflow.models import RunReport


def _binary(path, content, mode=0o755):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    path.chmod(mode)
    return path


def test_is_executable(tmp_path):
    assert is_executable(_binary(tmp_path / "tool", "x"))
    assert not is_executable(_binary(tmp_path / "data", "x", mode=0o644))
    assert not is_executable(_binary(tmp_path / "._tool", "x"))


def test_fat_binary_gets_thin_copies(tmp_path, toolkit):
    fat = _binary(tmp_path / "new/machos/arm64e/usr/bin/log", "FAT:arm64e,x86_64")

    written = split_fat_binaries(tmp_path, toolkit, RunReport())

    assert sorted(p.name for p in written) == ["log.arm64e", "log.x86_64"]
    assert (fat.parent / "log.x86_64").read_text() == "THIN:x86_64\n"
    assert fat.exists()


def test_thin_and_non_executable_files_are_left_alone(tmp_path, toolkit):
    _binary(tmp_path / "thin", "THIN:arm64e")
    _binary(tmp_path / "plain", "FAT:arm64e,x86_64", mode=0o644)

    assert split_fat_binaries(tmp_path, toolkit, RunReport()) == []
    assert toolkit.calls["thin"] == []


def test_rerun_is_stable(tmp_path, toolkit):
    _binary(tmp_path / "log", "FAT:arm64e,x86_64")

    split_fat_binaries(tmp_path, toolkit, RunReport())
    second = split_fat_binaries(tmp_path, toolkit, RunReport())

    assert sorted(p.name for p in second) == ["log.arm64e", "log.x86_64"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["log", "log.arm64e", "log.x86_64"]


def test_thin_failure_is_a_warning(tmp_path, toolkit, monkeypatch):
    _binary(tmp_path / "log", "FAT:arm64e,x86_64")

    def broken(binary, arch, output):
        raise ToolError("lipo failed", returncode=1)

    monkeypatch.setattr(toolkit, "thin", broken)
    report = RunReport()

    assert split_fat_binaries(tmp_path, toolkit, report) == []
    assert len(report.warnings) == 2


def test_missing_directory(tmp_path, toolkit):
    assert split_fat_binaries(tmp_path / "nope", toolkit, RunReport()) == []
