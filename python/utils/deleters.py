"""
Deleters for the three artifact classes handled by the cleanup job.

Each deleter removes exactly one artifact and raises NotFoundError when the
artifact is already gone, so a repeated delete is harmless to the caller.
"""

from typing import Any, Dict, List

from utils.director_store import DirectorStore, Stemcell
from utils.error_utils import NotFoundError, create_in_use_error
from utils.logging_utils import get_logger


class NameVersionReleaseDeleter:
    """Deletes one release version by name and version"""

    def __init__(self, store: DirectorStore):
        self.store = store
        self.logger = get_logger(self.__class__.__name__)

    def delete_by_name_version(self, name: str, version: str, force: bool = False) -> None:
        entry = self.store.find_release_version(name, version)
        if entry.get("currently_deployed") and not force:
            users = list(entry.get("deployments") or ["a running deployment"])
            raise create_in_use_error("release", f"{name}/{version}", users)
        self.store.delete_release_version(name, version)
        self.logger.info(f"Deleted release {name}/{version}")


class StemcellDeleter:
    """Deletes the stemcell image from the cloud, then its record"""

    def __init__(self, cloud, store: DirectorStore):
        self.cloud = cloud
        self.store = store
        self.logger = get_logger(self.__class__.__name__)

    def delete(self, stemcell: Stemcell, force: bool = False) -> None:
        if stemcell.deployments and not force:
            raise create_in_use_error("stemcell", stemcell.label, stemcell.deployments)

        if stemcell.cid:
            try:
                self.cloud.delete_stemcell(stemcell.cid)
            except NotFoundError:
                self.logger.warning(f"Stemcell image {stemcell.cid} for {stemcell.label} already gone from the cloud")
        self.store.delete_stemcell_record(stemcell)
        self.logger.info(f"Deleted stemcell {stemcell.label}")


class DiskManager:
    """Lists and deletes orphaned persistent disks"""

    def __init__(self, cloud, store: DirectorStore):
        self.cloud = cloud
        self.store = store
        self.logger = get_logger(self.__class__.__name__)

    def list_orphan_disks(self) -> List[Dict[str, Any]]:
        return self.store.list_orphan_disks()

    def delete_orphan_disk(self, disk_cid: str) -> None:
        # raises NotFoundError when another process already purged it
        self.store.find_orphan_disk(disk_cid)
        try:
            self.cloud.delete_disk(disk_cid)
        except NotFoundError:
            self.logger.warning(f"Disk {disk_cid} already gone from the cloud, removing its record")
        self.store.delete_orphan_disk_record(disk_cid)
        self.logger.info(f"Deleted orphaned disk {disk_cid}")
