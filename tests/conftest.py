"""
Shared fixtures: a fake toolkit standing in for the ipsw command line tool.

Firmware images are real (tiny) zip files so acquisition checks work.
Extraction writes the files configured per build and architecture;
kernelcaches and shared caches are JSON documents mapping the paths they
"contain" to file contents, which the fake kernel/dyld tools unpack.
Binaries starting with "FAT:" list their architectures after the colon.
"""

import json
import plistlib
import zipfile
from pathlib import Path

import pytest

from toolkit.base import ExtractRequest, MachoInfo, Toolkit
from workflow.errors import ToolError
from workflow.models import BuildRef, RunConfig

PRODUCT_VERSIONS = {"20C69": "11.1", "20D91": "11.2.3", "25A354": "26.0", "25B78": "26.1"}


def firmware_name(build_id: str) -> str:
    return f"UniversalMac_{PRODUCT_VERSIONS.get(build_id, '1.0')}_{build_id}_Restore.ipsw"


def write_firmware(directory: Path, build_id: str) -> Path:
    """Write a minimal restore image containing a BuildManifest.plist."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / firmware_name(build_id)
    manifest = {
        "BuildIdentities": [
            {
                "Info": {
                    "ProductVersion": PRODUCT_VERSIONS.get(build_id, "1.0"),
                    "ProductBuildVersion": build_id,
                }
            }
        ]
    }
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("BuildManifest.plist", plistlib.dumps(manifest))
    return path


class FakeToolkit(Toolkit):
    """In-memory stand-in for every external collaborator."""

    def __init__(self):
        self.build_urls: list[str] = []
        self.diff_document: dict = {}
        # build id -> arch -> {relative path: content}; a missing arch fails extraction
        self.images: dict[str, dict[str, dict[str, str]]] = {}
        self.executables: set[str] = set()
        self.versions: dict[str, MachoInfo] = {}
        self.fail_download = False
        self.calls: dict[str, list] = {
            "list": [], "download": [], "diff": [], "extract": [],
            "kexts": [], "split": [], "thin": [], "info": [],
        }
        self.working_dir: Path | None = None

    def set_working_dir(self, path: Path) -> None:
        self.working_dir = path

    def list_build_urls(self, device_id):
        self.calls["list"].append(device_id)
        return list(self.build_urls)

    def download(self, build: BuildRef, output_dir: Path) -> None:
        self.calls["download"].append(build.build_id)
        if self.fail_download:
            raise ToolError("download failed", returncode=1)
        write_firmware(output_dir, build.build_id)

    def firmware_url(self, build):
        return f"https://updates.example.com/{firmware_name(build.build_id)}"

    def diff(self, old_firmware, new_firmware, output_dir, block_list, title):
        self.calls["diff"].append((old_firmware.name, new_firmware.name, block_list, title))
        (output_dir / "Diff_output.json").write_text(json.dumps(self.diff_document, indent=2))

    def extract(self, firmware: Path, output_dir: Path, request: ExtractRequest) -> None:
        build_id = firmware.name.split("_")[2]
        self.calls["extract"].append((build_id, request))
        tree = self.images.get(build_id, {})
        if request.arch not in tree:
            raise ToolError(f"no {request.arch} in {firmware.name}", returncode=1)
        for rel, content in tree[request.arch].items():
            target = output_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
            if rel in self.executables:
                target.chmod(0o755)

    def extract_kexts(self, kernelcache, output_dir):
        self.calls["kexts"].append(kernelcache)
        for rel, content in json.loads(kernelcache.read_text()).items():
            target = output_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)

    def split(self, shared_cache, output_dir):
        self.calls["split"].append(shared_cache)
        for rel, content in json.loads(shared_cache.read_text()).items():
            target = output_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)

    def architectures(self, binary):
        content = binary.read_text(errors="ignore")
        if content.startswith("FAT:"):
            return content[4:].split("\n")[0].split(",")
        if content.startswith("THIN:"):
            return [content[5:].strip()]
        return []

    def thin(self, binary, arch, output):
        self.calls["thin"].append((binary.name, arch))
        output.write_text(f"THIN:{arch}\n")
        output.chmod(0o755)

    def macho_info(self, binary):
        self.calls["info"].append(binary.name)
        return self.versions.get(binary.name, MachoInfo(source_version=None, cpu=None))


@pytest.fixture
def toolkit():
    return FakeToolkit()


@pytest.fixture
def base_dir(tmp_path):
    path = tmp_path / "ipsw_diffs"
    path.mkdir()
    return path


@pytest.fixture
def make_config(base_dir):
    """Factory for RunConfig with test-friendly defaults."""

    def _make(**overrides) -> RunConfig:
        values = {
            "os_type": "macOS",
            "device": "Mac14,3",
            "new_build": "25B78",
            "old_build": "25A354",
            "base_dir": base_dir,
            "architectures": ("arm64e", "x86_64"),
            "security_updates_url": None,
        }
        values.update(overrides)
        return RunConfig(**values)

    return _make


@pytest.fixture
def work_unit(base_dir):
    from workflow.models import WorkUnit

    unit = WorkUnit(
        old=BuildRef("macOS", "Mac14,3", "25A354"),
        new=BuildRef("macOS", "Mac14,3", "25B78"),
        base_dir=base_dir,
    )
    unit.prepare()
    return unit


@pytest.fixture
def make_firmware():
    """Factory writing a fake restore image: make_firmware(directory, build_id)."""
    return write_firmware
