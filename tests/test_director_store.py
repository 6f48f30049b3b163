"""Unit tests for utils/director_store.py"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import mongomock
import pytest
from pymongo.errors import ServerSelectionTimeoutError

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))

from scripts.cleanup_artifacts import build_cleanup_job  # noqa: E402
from utils.config_manager import ConfigManager  # noqa: E402
from utils.director_store import DirectorStore, Stemcell, version_query_values, version_sort_key  # noqa: E402
from utils.error_utils import ActionableError, ErrorCategory, NotFoundError  # noqa: E402


@pytest.fixture
def db():
    return MagicMock()


@pytest.fixture
def store(db):
    return DirectorStore(db)


class TestVersionSortKey:
    def test_numeric_segments(self):
        versions = ["2.10", "2.9", "10", "2.9.1", "1"]
        assert sorted(versions, key=version_sort_key) == ["1", "2.9", "2.9.1", "2.10", "10"]

    def test_pre_release_sorts_before_final(self):
        assert sorted(["1.0", "1.0-dev"], key=version_sort_key) == ["1.0-dev", "1.0"]

    def test_query_values_cover_numeric_storage(self):
        assert version_query_values("3") == ["3", 3]
        assert version_query_values("3.1") == ["3.1", 3.1]
        assert version_query_values("3.1.2") == ["3.1.2"]
        assert version_query_values("03") == ["03"]
        assert version_query_values("1.0-dev") == ["1.0-dev"]


class TestReleases:
    """Tests for release queries and deletes"""

    def test_get_all_releases_orders_versions_oldest_first(self, db, store):
        db.releases.find.return_value.sort.return_value = [
            {"name": "nginx", "versions": [
                {"version": "10", "currently_deployed": False},
                {"version": "9", "currently_deployed": True},
                {"version": "9.1"},
            ]},
        ]

        releases = store.get_all_releases()

        assert releases == [{
            "name": "nginx",
            "release_versions": [
                {"version": "9", "currently_deployed": True},
                {"version": "9.1", "currently_deployed": False},
                {"version": "10", "currently_deployed": False},
            ],
        }]

    def test_find_release_version(self, db, store):
        db.releases.find_one.return_value = {"name": "nginx", "versions": [{"version": "1"}, {"version": "2"}]}

        assert store.find_release_version("nginx", "2") == {"version": "2"}
        db.releases.find_one.assert_called_once_with(
            {"name": "nginx", "versions.version": {"$in": ["2", 2]}}
        )

    def test_find_missing_release_version(self, db, store):
        db.releases.find_one.return_value = None

        with pytest.raises(NotFoundError):
            store.find_release_version("nginx", "2")

    def test_delete_release_version_removes_empty_release(self, db, store):
        db.releases.update_one.return_value.modified_count = 1

        store.delete_release_version("nginx", "1")

        db.releases.update_one.assert_called_once_with(
            {"name": "nginx"}, {"$pull": {"versions": {"version": {"$in": ["1", 1]}}}}
        )
        db.releases.delete_one.assert_called_once_with({"name": "nginx", "versions": {"$size": 0}})

    def test_delete_missing_release_version(self, db, store):
        db.releases.update_one.return_value.modified_count = 0

        with pytest.raises(NotFoundError):
            store.delete_release_version("nginx", "1")
        db.releases.delete_one.assert_not_called()


class TestStemcells:
    """Tests for stemcell queries and deletes"""

    def test_get_all_stemcells_grouped_by_name(self, db, store):
        db.stemcells.find.return_value = [
            {"name": "ubuntu", "version": "10", "cid": "ami-10"},
            {"name": "centos", "version": "1", "cid": "ami-c1", "deployments": ["cf"]},
            {"name": "ubuntu", "version": "9", "cid": "ami-9"},
        ]

        stemcells = store.get_all_stemcells()

        assert [(s["name"], s["version"]) for s in stemcells] == [("centos", "1"), ("ubuntu", "9"), ("ubuntu", "10")]
        assert stemcells[0]["deployments"] == ["cf"]

    def test_find_by_name_and_version(self, db, store):
        db.stemcells.find_one.return_value = {"_id": 7, "name": "ubuntu", "version": 9, "cid": "ami-9"}

        stemcell = store.find_by_name_and_version("ubuntu", "9")

        assert stemcell == Stemcell(name="ubuntu", version="9", cid="ami-9", deployments=[], id=7)
        assert stemcell.label == "ubuntu/9"

    def test_find_missing_stemcell(self, db, store):
        db.stemcells.find_one.return_value = None

        with pytest.raises(NotFoundError):
            store.find_by_name_and_version("ubuntu", "9")

    def test_delete_stemcell_record(self, db, store):
        db.stemcells.delete_one.return_value.deleted_count = 0

        with pytest.raises(NotFoundError):
            store.delete_stemcell_record(Stemcell("ubuntu", "9", "ami-9"))


class TestOrphanDisks:
    """Tests for orphan disk queries and deletes"""

    def test_list_orphan_disks(self, db, store):
        db.orphan_disks.find.return_value.sort.return_value = [
            {"_id": 1, "disk_cid": "vol-1", "size": 1024, "deployment_name": "cf", "instance_name": "db/0"},
        ]

        disks = store.list_orphan_disks()

        assert disks == [{
            "disk_cid": "vol-1",
            "size": 1024,
            "deployment_name": "cf",
            "instance_name": "db/0",
            "created_at": None,
        }]

    def test_find_and_delete_missing_disk(self, db, store):
        db.orphan_disks.find_one.return_value = None
        db.orphan_disks.delete_one.return_value.deleted_count = 0

        with pytest.raises(NotFoundError):
            store.find_orphan_disk("vol-1")
        with pytest.raises(NotFoundError):
            store.delete_orphan_disk_record("vol-1")


class TestFromConfig:
    def test_ping_failure_raises_connection_error(self):
        client = MagicMock()
        client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")
        config_manager = ConfigManager(config_file="/nonexistent/config.yaml")

        with pytest.raises(ActionableError) as exc_info:
            DirectorStore.from_config(config_manager, client=client)

        assert exc_info.value.category == ErrorCategory.CONNECTION

    def test_uses_configured_database(self):
        client = MagicMock()
        config_manager = ConfigManager(config_file="/nonexistent/config.yaml")

        store = DirectorStore.from_config(config_manager, client=client)

        client.__getitem__.assert_called_once_with("director")
        assert store.retry_settings["max_retries"] == 3


class TestNumericVersions:
    """Versions stored as numbers are found and deleted, not reported as already gone"""

    @pytest.fixture
    def mongo_db(self):
        db = mongomock.MongoClient()["director"]
        db.releases.insert_one({"name": "a", "versions": [{"version": 1}, {"version": 2}, {"version": 3}]})
        db.stemcells.insert_many([
            {"name": "s", "version": v, "cid": f"ami-{v}", "deployments": []} for v in (1, 2, 3)
        ])
        return db

    def test_release_version_stored_as_number(self, mongo_db):
        store = DirectorStore(mongo_db)

        assert store.find_release_version("a", "1") == {"version": 1}
        store.delete_release_version("a", "1")

        assert mongo_db.releases.find_one({"name": "a"})["versions"] == [{"version": 2}, {"version": 3}]

    def test_last_numeric_version_removes_release(self, mongo_db):
        store = DirectorStore(mongo_db)

        for version in ("1", "2", "3"):
            store.delete_release_version("a", version)

        assert mongo_db.releases.count_documents({}) == 0

    def test_stemcell_stored_as_number(self, mongo_db):
        store = DirectorStore(mongo_db)

        stemcell = store.find_by_name_and_version("s", "2")
        store.delete_stemcell_record(stemcell)

        assert sorted(d["version"] for d in mongo_db.stemcells.find({})) == [1, 3]

    def test_cleanup_run_deletes_numeric_versions(self, mongo_db):
        store = DirectorStore(mongo_db)
        job = build_cleanup_job(
            {"remove_all": False},
            ConfigManager(config_file="/nonexistent/config.yaml"),
            show_progress=False,
            store=store,
            cloud=MagicMock(),
        )

        report = job.run()

        assert report.summary() == "stemcell(s) deleted: s/1; release(s) deleted: a/1"
        assert report.counts() == {"total": 2, "deleted": 2, "already_gone": 0, "failed": 0}
        assert mongo_db.releases.find_one({"name": "a"})["versions"] == [{"version": 2}, {"version": 3}]
        assert sorted(d["version"] for d in mongo_db.stemcells.find({})) == [2, 3]
