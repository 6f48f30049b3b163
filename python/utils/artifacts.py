"""
Value types shared by the pickers, deleters and the cleanup job.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ArtifactKind(Enum):
    RELEASE = "release"
    STEMCELL = "stemcell"
    DISK = "disk"


@dataclass(frozen=True)
class ArtifactReference:
    """An artifact picked for deletion during one cleanup run.

    Releases and stemcells are identified by (kind, name, version), orphan
    disks by (kind, id); the unused fields stay None so field equality
    compares only what identifies the artifact.
    """

    kind: ArtifactKind
    name: Optional[str] = None
    version: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self):
        if self.kind is ArtifactKind.DISK:
            if not self.id:
                raise ValueError("Disk references require an id")
        elif not self.name or self.version is None:
            raise ValueError(f"{self.kind.value.capitalize()} references require a name and version")

    @classmethod
    def release(cls, name: str, version: str) -> "ArtifactReference":
        return cls(ArtifactKind.RELEASE, name=name, version=str(version))

    @classmethod
    def stemcell(cls, name: str, version: str) -> "ArtifactReference":
        return cls(ArtifactKind.STEMCELL, name=name, version=str(version))

    @classmethod
    def disk(cls, disk_cid: str) -> "ArtifactReference":
        return cls(ArtifactKind.DISK, id=disk_cid)

    @property
    def label(self) -> str:
        """``name/version`` for releases and stemcells, the disk id for disks"""
        if self.kind is ArtifactKind.DISK:
            return self.id
        return f"{self.name}/{self.version}"


@dataclass(frozen=True)
class RetentionPolicy:
    """How many of the most recent versions per name survive a cleanup"""

    keep_count: int = 2

    def __post_init__(self):
        if not isinstance(self.keep_count, int) or self.keep_count < 0:
            raise ValueError(f"keep_count must be a non-negative integer, got: {self.keep_count}")

    @classmethod
    def for_run(cls, remove_all: bool, default_keep_count: int = 2) -> "RetentionPolicy":
        return cls(keep_count=0 if remove_all else default_keep_count)


@dataclass(frozen=True)
class DeletionTask:
    artifact: ArtifactReference
    lock_key: Optional[str] = None


@dataclass(frozen=True)
class DeletionOutcome:
    """Result of one deletion task. ``skipped`` marks an artifact that was already gone."""

    artifact: ArtifactReference
    succeeded: bool
    error: Optional[BaseException] = None
    skipped: bool = False
    sequence: int = 0

    @property
    def status(self) -> str:
        if not self.succeeded:
            return "failed"
        return "already gone" if self.skipped else "deleted"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.artifact.kind.value,
            "artifact": self.artifact.label,
            "status": self.status,
            "error_type": type(self.error).__name__ if self.error is not None else None,
            "error": getattr(self.error, "message", str(self.error)) if self.error is not None else None,
        }
