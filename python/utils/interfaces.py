"""
Collaborator interfaces consumed by the cleanup job.

The job only depends on these shapes; concrete implementations live in
director_store, deleters, cloud_client, resource_lock and event_log.
"""

from typing import Any, Callable, ContextManager, Dict, List, Optional, Protocol, TypeVar

from utils.artifacts import ArtifactReference

T = TypeVar("T")


class RetentionPicker(Protocol):
    def pick(self, keep_count: int) -> List[ArtifactReference]: ...


class StemcellLookup(Protocol):
    def find_by_name_and_version(self, name: str, version: str) -> Any:
        """Return a stemcell handle or raise NotFoundError"""
        ...


class ReleaseDeleter(Protocol):
    def delete_by_name_version(self, name: str, version: str, force: bool) -> None: ...


class StemcellDeleter(Protocol):
    def delete(self, stemcell: Any) -> None: ...


class DiskLister(Protocol):
    def list_orphan_disks(self) -> List[Dict[str, Any]]: ...


class DiskDeleter(Protocol):
    def delete_orphan_disk(self, disk_cid: str) -> None: ...


class LockProvider(Protocol):
    def with_lock(self, name: str, timeout: float, body: Callable[[], T]) -> T:
        """Run ``body`` while holding ``name`` or raise LockTimeoutError"""
        ...


class ProgressTracker(Protocol):
    def begin_stage(self, stage: str, total: int) -> None: ...

    def track(self, label: str, stage: Optional[str] = None) -> ContextManager[None]: ...
