"""Toolkit implementation backed by the ``ipsw`` command line tool."""

import re
import shutil
import subprocess
from pathlib import Path

from common.env import env
from common.logger import get_logger
from workflow.errors import ToolError, ToolNotFoundError
from workflow.models import BuildRef

from .base import ExtractRequest, MachoInfo, Toolkit

logger = get_logger(__name__)

_SOURCE_VERSION_RE = re.compile(r"LC_SOURCE_VERSION\s+(\d+\.\d+\.\d+\.\d+\.\d+)")
_CPU_RE = re.compile(r"^CPU\s*=.*$", re.MULTILINE)


def parse_lipo_info(output: str) -> list[str]:
    """
    Parse ``ipsw lipo -info`` output into a list of architectures.

    Handles both forms:
        Architectures in the fat file: foo are: x86_64 arm64e
        Non-fat file: foo is architecture: arm64e
    """
    for line in output.splitlines():
        if "Architectures in the fat file" in line and "are:" in line:
            return line.split("are:", 1)[1].split()
        if "Non-fat file" in line and "architecture:" in line:
            return line.split("architecture:", 1)[1].split()
    return []


def parse_macho_info(output: str) -> MachoInfo:
    """
    Pull LC_SOURCE_VERSION and the CPU type out of ``ipsw macho info`` output.

    The CPU line looks like ``CPU = AARCH64, ARM64e caps: ...``; its third
    whitespace field, lower-cased and stripped of trailing punctuation, is
    the arch.
    """
    text = output.replace("\r", "")

    version = None
    match = _SOURCE_VERSION_RE.search(text)
    if match:
        version = match.group(1)

    cpu = None
    match = _CPU_RE.search(text)
    if match:
        fields = match.group(0).split()
        if len(fields) > 2:
            cpu = fields[2].lower().rstrip(",;.") or None

    return MachoInfo(source_version=version, cpu=cpu)


class IpswToolkit(Toolkit):
    """Drive ``ipsw`` (download, diff, extract, kernel, dyld, lipo, macho)."""

    def __init__(self, ipsw_bin: str | None = None, cwd: Path | None = None):
        self.ipsw_bin = ipsw_bin or env.ipsw_bin()
        self.cwd = cwd

    def check_requirements(self) -> None:
        for tool in (self.ipsw_bin, env.zip_bin()):
            if shutil.which(tool) is None:
                raise ToolNotFoundError(f"Required tool '{tool}' not found on PATH")

    def set_working_dir(self, path: Path) -> None:
        self.cwd = path

    def _run(self, *args: str, capture: bool = True) -> str:
        """
        Run ipsw with ``args``.

        Long-running commands pass capture=False so their progress streams
        straight to the terminal.

        Raises:
            ToolNotFoundError: If the ipsw binary is missing
            ToolError: If the command exits non-zero
        """
        cmd = [self.ipsw_bin, *args]
        logger.debug(f"$ {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                cwd=self.cwd,
                capture_output=capture,
                text=True,
                check=True,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(f"Required tool '{self.ipsw_bin}' not found") from e
        except subprocess.CalledProcessError as e:
            raise ToolError(
                f"{' '.join(cmd[:3])} failed with exit code {e.returncode}",
                returncode=e.returncode,
                stderr=e.stderr or "",
            ) from e
        return result.stdout or ""

    def list_build_urls(self, device_id: str) -> list[str]:
        output = self._run("dl", "ipsw", "--urls", "--device", device_id)
        return [line.strip() for line in output.splitlines() if line.strip()]

    def download(self, build: BuildRef, output_dir: Path) -> None:
        self._run(
            "dl", "appledb",
            "--os", build.os_type,
            "--device", build.device_id,
            "--build", build.build_id,
            "--output", str(output_dir),
            "--confirm",
            capture=False,
        )

    def firmware_url(self, build: BuildRef) -> str | None:
        output = self._run(
            "dl", "appledb",
            "--os", build.os_type,
            "--device", build.device_id,
            "--build", build.build_id,
            "--urls",
        )
        urls = [line.strip() for line in output.splitlines() if line.strip()]
        return urls[0] if urls else None

    def diff(
        self,
        old_firmware: Path,
        new_firmware: Path,
        output_dir: Path,
        block_list: tuple[str, ...],
        title: str,
    ) -> None:
        args: list[str] = ["diff"]
        for section in block_list:
            args += ["--block-list", section]
        args += [
            str(old_firmware),
            str(new_firmware),
            "--ent",
            "--launchd",
            "--json",
            "--output", str(output_dir),
            "--title", title,
        ]
        self._run(*args, capture=False)

    def extract(self, firmware: Path, output_dir: Path, request: ExtractRequest) -> None:
        args: list[str] = ["extract"]
        if request.kernel:
            args.append("--kernel")
        if request.dyld:
            args += ["--dyld", "--dyld-arch", request.arch]
        if request.files_pattern is not None:
            args += ["--files", "--pattern", request.files_pattern]
        args += ["-o", str(output_dir), str(firmware)]
        self._run(*args, capture=False)

    def extract_kexts(self, kernelcache: Path, output_dir: Path) -> None:
        self._run("kernel", "extract", str(kernelcache), "--all", "--output", str(output_dir), capture=False)

    def split(self, shared_cache: Path, output_dir: Path) -> None:
        self._run("dyld", "split", str(shared_cache), "-o", str(output_dir), capture=False)

    def architectures(self, binary: Path) -> list[str]:
        try:
            return parse_lipo_info(self._run("lipo", "-info", str(binary)))
        except ToolError:
            # Not a Mach-O
            return []

    def thin(self, binary: Path, arch: str, output: Path) -> None:
        self._run("lipo", str(binary), "-thin", arch, "-output", str(output))

    def macho_info(self, binary: Path) -> MachoInfo:
        try:
            return parse_macho_info(self._run("macho", "info", str(binary)))
        except ToolError:
            return MachoInfo(source_version=None, cpu=None)
