"""Data models for a firmware diff run."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from common.constants import FIRMWARE_DIRNAME, WORKDIR_SUBDIRS

from .errors import WorkflowError

Side = Literal["old", "new"]
SIDES: tuple[Side, ...] = ("old", "new")


def safe_device(device_id: str) -> str:
    """Make a device id usable in file names ('Mac14,3' -> 'Mac14_3')."""
    return device_id.replace(",", "_")


@dataclass(frozen=True)
class BuildRef:
    """One firmware release for a device."""

    os_type: str
    device_id: str
    build_id: str


@dataclass(frozen=True)
class WorkUnit:
    """An old/new build pair and its deterministic working directory."""

    old: BuildRef
    new: BuildRef
    base_dir: Path

    @property
    def device(self) -> str:
        return safe_device(self.new.device_id)

    @property
    def workdir(self) -> Path:
        return self.base_dir / self.device / f"{self.old.build_id}-{self.new.build_id}"

    @property
    def firmware_dir(self) -> Path:
        return self.base_dir / FIRMWARE_DIRNAME

    def build(self, side: Side) -> BuildRef:
        return self.old if side == "old" else self.new

    def subdir(self, name: str) -> Path:
        return self.workdir / name

    def prepare(self) -> None:
        """Create the firmware cache dir and every workdir subdirectory."""
        self.firmware_dir.mkdir(parents=True, exist_ok=True)
        for name in WORKDIR_SUBDIRS:
            self.subdir(name).mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class RunConfig:
    """Immutable settings for one invocation, shared by every stage."""

    os_type: str
    device: str
    new_build: str
    old_build: str | None
    base_dir: Path
    architectures: tuple[str, ...]
    diff_only: bool = False
    force_diff: bool = False
    tag_versions: bool = False
    diff_part_size: str = "99m"
    archive_part_size: str = "1900m"
    security_updates_url: str | None = None


@dataclass
class ChangeSet:
    """Paths whose diff shows an executable-code change, per category."""

    kexts: list[str] = field(default_factory=list)
    dylibs: list[str] = field(default_factory=list)
    machos: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.kexts or self.dylibs or self.machos)


@dataclass(frozen=True)
class ChangedArtifact:
    """A changed binary copied into the normalized changed tree."""

    side: Side
    arch: str
    relative_path: str
    source: Path

    def map_line(self) -> str:
        return f"{self.side}:{self.arch}:{self.relative_path} -> {self.source}"


@dataclass
class RunReport:
    """Mutable record of what happened during a run.

    Stages append recoverable warnings here. A fatal error stops the run
    and is kept in ``fatal``; the runner returns the report either way
    instead of printing partial state.
    """

    warnings: list[str] = field(default_factory=list)
    outputs: dict[str, str] = field(default_factory=dict)
    artifacts: list[ChangedArtifact] = field(default_factory=list)
    fatal: WorkflowError | None = None

    def warn(self, stage: str, message: str) -> None:
        self.warnings.append(f"[{stage}] {message}")

    def output(self, key: str, value: str) -> None:
        self.outputs[key] = value

    def fail(self, error: WorkflowError) -> None:
        self.fatal = error

    @property
    def ok(self) -> bool:
        return self.fatal is None
