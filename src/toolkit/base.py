"""Abstract interfaces for the external tools the workflow drives.

The pipeline only talks to these interfaces. The production implementation
shells out to the ``ipsw`` command line tool (see ``toolkit.ipsw``); tests
substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from extract.paths import PathSet
from workflow.models import BuildRef


@dataclass(frozen=True)
class ExtractRequest:
    """Capabilities requested from one extraction call."""

    arch: str
    kernel: bool = False
    dyld: bool = False
    files: tuple[str, ...] = ()

    @property
    def files_pattern(self) -> str | None:
        return PathSet(self.files).to_pattern()

    def is_empty(self) -> bool:
        return not (self.kernel or self.dyld or self.files)

    def as_dict(self) -> dict:
        return {
            "arch": self.arch,
            "kernel": self.kernel,
            "dyld": self.dyld,
            "files": sorted(PathSet(self.files).relative_paths()),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractRequest":
        return cls(
            arch=data.get("arch", ""),
            kernel=bool(data.get("kernel")),
            dyld=bool(data.get("dyld")),
            files=tuple(data.get("files") or ()),
        )

    def covers(self, other: "ExtractRequest") -> bool:
        """True if everything ``other`` asks for was already requested here."""
        return (
            (self.kernel or not other.kernel)
            and (self.dyld or not other.dyld)
            and PathSet(self.files).issuperset(PathSet(other.files))
        )

    def merge(self, other: "ExtractRequest") -> "ExtractRequest":
        return ExtractRequest(
            arch=self.arch,
            kernel=self.kernel or other.kernel,
            dyld=self.dyld or other.dyld,
            files=tuple(PathSet(self.files).union(PathSet(other.files))),
        )


@dataclass(frozen=True)
class MachoInfo:
    """Embedded version metadata of one executable."""

    source_version: str | None
    cpu: str | None


class DownloadService(ABC):
    """Firmware download collaborator."""

    @abstractmethod
    def list_build_urls(self, device_id: str) -> list[str]:
        """Return the download references for every build of a device, in listing order.

        Raises:
            ToolError: If the listing cannot be fetched
        """
        pass

    @abstractmethod
    def download(self, build: BuildRef, output_dir: Path) -> None:
        """Fetch the firmware image for ``build`` into ``output_dir``.

        Raises:
            ToolError: If the download fails
        """
        pass

    @abstractmethod
    def firmware_url(self, build: BuildRef) -> str | None:
        """Return the download URL for ``build``, or None if unknown."""
        pass


class DiffEngine(ABC):
    """Binary diff collaborator."""

    @abstractmethod
    def diff(
        self,
        old_firmware: Path,
        new_firmware: Path,
        output_dir: Path,
        block_list: tuple[str, ...],
        title: str,
    ) -> None:
        """Diff two firmware images, writing a JSON document into ``output_dir``.

        Raises:
            ToolError: If the diff fails
        """
        pass


class ExtractionEngine(ABC):
    """Firmware filesystem extraction collaborator."""

    @abstractmethod
    def extract(self, firmware: Path, output_dir: Path, request: ExtractRequest) -> None:
        """Extract the requested content for one architecture.

        Raises:
            ToolError: If the firmware has no content for the architecture
                or extraction fails
        """
        pass


class KernelExtractor(ABC):
    """Kernelcache module extraction collaborator."""

    @abstractmethod
    def extract_kexts(self, kernelcache: Path, output_dir: Path) -> None:
        pass


class SharedCacheSplitter(ABC):
    """dyld_shared_cache split collaborator."""

    @abstractmethod
    def split(self, shared_cache: Path, output_dir: Path) -> None:
        pass


class BinaryIntrospector(ABC):
    """Mach-O introspection collaborator."""

    @abstractmethod
    def architectures(self, binary: Path) -> list[str]:
        """Return the architectures contained in ``binary``.

        Returns an empty list for files that are not Mach-O.
        """
        pass

    @abstractmethod
    def thin(self, binary: Path, arch: str, output: Path) -> None:
        pass

    @abstractmethod
    def macho_info(self, binary: Path) -> MachoInfo:
        pass


class Toolkit(
    DownloadService,
    DiffEngine,
    ExtractionEngine,
    KernelExtractor,
    SharedCacheSplitter,
    BinaryIntrospector,
):
    """A single object providing every collaborator."""

    def check_requirements(self) -> None:
        """Raise ToolNotFoundError when a required tool is missing."""
        pass

    def set_working_dir(self, path: Path) -> None:
        """Directory tools run in, where stray mounted images end up."""
        pass
