"""
MongoDB-backed director metadata: releases, stemcells and orphan disks.

Collections:
- releases:     {name, versions: [{version, currently_deployed}]}
- stemcells:    {name, version, cid, deployments: [deployment names]}
- orphan_disks: {disk_cid, size, deployment_name, instance_name, created_at}

Versions come back oldest first, which is the order the pickers rely on.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from pymongo import ASCENDING, MongoClient
from pymongo.errors import PyMongoError

from utils.error_utils import create_mongodb_connection_error, create_not_found_error
from utils.logging_utils import get_logger
from utils.retry_utils import retry_operation

T = TypeVar("T")

_VERSION_TOKEN = re.compile(r"\d+|[A-Za-z]+")


def version_sort_key(version: Any) -> Tuple:
    """Order versions numerically segment by segment ("2.10" after "2.9").

    A pre-release suffix ("1.0-dev") sorts before the plain version.
    """
    text = str(version)
    main, _, suffix = text.partition("-")
    parts = []
    for token in _VERSION_TOKEN.findall(main):
        parts.append((0, int(token), "") if token.isdigit() else (1, 0, token))
    # plain versions outrank any suffixed build of the same number
    return tuple(parts), ((1,) if not suffix else (0, suffix))


def version_query_values(version: Any) -> List[Any]:
    """String and numeric forms a picked version may be stored as.

    Versions are read back as strings, but the database may hold "3", 3 or 3.1.
    """
    text = str(version)
    values: List[Any] = [text]
    for cast in (int, float):
        try:
            value = cast(text)
        except ValueError:
            continue
        if str(value) == text and value not in values:
            values.append(value)
    return values


@dataclass
class Stemcell:
    """Stemcell handle returned by the lookup and passed to the stemcell deleter"""

    name: str
    version: str
    cid: str
    deployments: List[str] = field(default_factory=list)
    id: Optional[Any] = None

    @property
    def label(self) -> str:
        return f"{self.name}/{self.version}"


def get_mongo_client(config_manager) -> MongoClient:
    """Return a MongoClient using the centralized connection string."""
    connection_string = config_manager.get_mongo_connection_string()
    return MongoClient(connection_string)


class DirectorStore:
    """Reads and deletes director metadata records"""

    def __init__(self, db, retry_settings: Optional[Dict[str, Any]] = None):
        self.db = db
        self.retry_settings = retry_settings or {"max_retries": 0}
        self.logger = get_logger(self.__class__.__name__)

    @classmethod
    def from_config(cls, config_manager, client: Optional[MongoClient] = None) -> "DirectorStore":
        client = client or get_mongo_client(config_manager)
        try:
            client.admin.command("ping")
        except PyMongoError as e:
            raise create_mongodb_connection_error(
                config_manager.get_mongo_host(), config_manager.get_mongo_port(), e
            ) from e
        return cls(client[config_manager.get_mongo_db()], config_manager.get_retry_settings())

    def _call(self, name: str, operation: Callable[[], T]) -> T:
        return retry_operation(operation, operation_name=name, **self.retry_settings)

    # Releases
    def get_all_releases(self) -> List[Dict[str, Any]]:
        """All releases by name, each with ``release_versions`` oldest first"""
        docs = self._call("get_all_releases", lambda: list(self.db.releases.find({}).sort("name", ASCENDING)))
        releases = []
        for doc in docs:
            versions = sorted(doc.get("versions", []), key=lambda v: version_sort_key(v["version"]))
            releases.append({
                "name": doc["name"],
                "release_versions": [
                    {"version": str(v["version"]), "currently_deployed": bool(v.get("currently_deployed"))}
                    for v in versions
                ],
            })
        return releases

    def find_release_version(self, name: str, version: str) -> Dict[str, Any]:
        doc = self._call(
            "find_release_version",
            lambda: self.db.releases.find_one(
                {"name": name, "versions.version": {"$in": version_query_values(version)}}
            ),
        )
        if doc is None:
            raise create_not_found_error("release", f"{name}/{version}")
        for entry in doc.get("versions", []):
            if str(entry["version"]) == str(version):
                return entry
        raise create_not_found_error("release", f"{name}/{version}")

    def delete_release_version(self, name: str, version: str) -> None:
        result = self._call(
            "delete_release_version",
            lambda: self.db.releases.update_one(
                {"name": name}, {"$pull": {"versions": {"version": {"$in": version_query_values(version)}}}}
            ),
        )
        if result.modified_count == 0:
            raise create_not_found_error("release", f"{name}/{version}")
        # a release without versions is removed entirely
        self._call(
            "delete_empty_release",
            lambda: self.db.releases.delete_one({"name": name, "versions": {"$size": 0}}),
        )
        self.logger.debug(f"Deleted release version record {name}/{version}")

    # Stemcells
    def get_all_stemcells(self) -> List[Dict[str, Any]]:
        """All stemcells grouped by name, each group oldest version first"""
        docs = self._call("get_all_stemcells", lambda: list(self.db.stemcells.find({})))
        docs.sort(key=lambda d: (d["name"], version_sort_key(d["version"])))
        return [
            {
                "name": d["name"],
                "version": str(d["version"]),
                "cid": d.get("cid"),
                "deployments": list(d.get("deployments", [])),
            }
            for d in docs
        ]

    def find_by_name_and_version(self, name: str, version: str) -> Stemcell:
        doc = self._call(
            "find_stemcell",
            lambda: self.db.stemcells.find_one(
                {"name": name, "version": {"$in": version_query_values(version)}}
            ),
        )
        if doc is None:
            raise create_not_found_error("stemcell", f"{name}/{version}")
        return Stemcell(
            name=doc["name"],
            version=str(doc["version"]),
            cid=doc.get("cid"),
            deployments=list(doc.get("deployments", [])),
            id=doc.get("_id"),
        )

    def delete_stemcell_record(self, stemcell: Stemcell) -> None:
        result = self._call(
            "delete_stemcell_record",
            lambda: self.db.stemcells.delete_one(
                {"name": stemcell.name, "version": {"$in": version_query_values(stemcell.version)}}
            ),
        )
        if result.deleted_count == 0:
            raise create_not_found_error("stemcell", stemcell.label)

    # Orphan disks
    def list_orphan_disks(self) -> List[Dict[str, Any]]:
        docs = self._call(
            "list_orphan_disks",
            lambda: list(self.db.orphan_disks.find({}).sort([("created_at", ASCENDING), ("disk_cid", ASCENDING)])),
        )
        return [
            {
                "disk_cid": d["disk_cid"],
                "size": d.get("size"),
                "deployment_name": d.get("deployment_name"),
                "instance_name": d.get("instance_name"),
                "created_at": d.get("created_at"),
            }
            for d in docs
        ]

    def find_orphan_disk(self, disk_cid: str) -> Dict[str, Any]:
        doc = self._call("find_orphan_disk", lambda: self.db.orphan_disks.find_one({"disk_cid": disk_cid}))
        if doc is None:
            raise create_not_found_error("orphan disk", disk_cid)
        return doc

    def delete_orphan_disk_record(self, disk_cid: str) -> None:
        result = self._call(
            "delete_orphan_disk_record", lambda: self.db.orphan_disks.delete_one({"disk_cid": disk_cid})
        )
        if result.deleted_count == 0:
            raise create_not_found_error("orphan disk", disk_cid)
