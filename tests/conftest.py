"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides in-memory director collaborators for the cleanup job tests.
"""
import sys
import threading
import time
from contextlib import contextmanager
from pathlib import Path

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

from utils.error_utils import create_not_found_error  # noqa: E402
from utils.resource_lock import NamedResourceLock  # noqa: E402


class FakeDirector:
    """In-memory releases, stemcells and orphan disks with recording deleters"""

    def __init__(self, releases=None, stemcells=None, orphan_disks=None, delay=0.0):
        # releases: {name: [version, ...]} oldest first
        self.releases = {name: list(versions) for name, versions in (releases or {}).items()}
        # stemcells: {name: [version, ...]} oldest first
        self.stemcells = {name: list(versions) for name, versions in (stemcells or {}).items()}
        self.orphan_disks = list(orphan_disks or [])
        self.deployed_releases = set()
        self.delay = delay
        self.failures = {}
        self.deleted = []
        self.lookups = []
        self._lock = threading.Lock()

    def _maybe_fail(self, key):
        if self.delay:
            time.sleep(self.delay)
        error = self.failures.get(key)
        if error is not None:
            raise error

    # release manager / deleter
    def get_all_releases(self):
        return [
            {
                "name": name,
                "release_versions": [
                    {"version": v, "currently_deployed": (name, v) in self.deployed_releases} for v in versions
                ],
            }
            for name, versions in self.releases.items()
        ]

    def delete_by_name_version(self, name, version, force):
        self._maybe_fail(("release", name, version))
        with self._lock:
            if version not in self.releases.get(name, []):
                raise create_not_found_error("release", f"{name}/{version}")
            self.releases[name].remove(version)
            self.deleted.append(("release", name, version))

    # stemcell manager / lookup / deleter
    def get_all_stemcells(self):
        return [
            {"name": name, "version": v, "cid": f"ami-{name}-{v}", "deployments": []}
            for name, versions in self.stemcells.items()
            for v in versions
        ]

    def find_by_name_and_version(self, name, version):
        with self._lock:
            self.lookups.append((name, version))
            if version not in self.stemcells.get(name, []):
                raise create_not_found_error("stemcell", f"{name}/{version}")
        return {"name": name, "version": version}

    def delete(self, stemcell):
        self._maybe_fail(("stemcell", stemcell["name"], stemcell["version"]))
        with self._lock:
            self.stemcells[stemcell["name"]].remove(stemcell["version"])
            self.deleted.append(("stemcell", stemcell["name"], stemcell["version"]))

    # disk manager
    def list_orphan_disks(self):
        return [{"disk_cid": cid} for cid in self.orphan_disks]

    def delete_orphan_disk(self, disk_cid):
        self._maybe_fail(("disk", disk_cid))
        with self._lock:
            if disk_cid not in self.orphan_disks:
                raise create_not_found_error("orphan disk", disk_cid)
            self.orphan_disks.remove(disk_cid)
            self.deleted.append(("disk", disk_cid))


class RecordingLockProvider:
    """LockProvider over a real NamedResourceLock that records hold intervals per name"""

    def __init__(self, locks=None):
        self.locks = locks or NamedResourceLock()
        self.intervals = {}
        self.requests = []
        self._lock = threading.Lock()

    def with_lock(self, name, timeout, body):
        with self._lock:
            self.requests.append((name, timeout))
        with self.locks.lease(name, timeout):
            start = time.monotonic()
            try:
                return body()
            finally:
                end = time.monotonic()
                with self._lock:
                    self.intervals.setdefault(name, []).append((start, end))

    def overlaps(self):
        found = []
        for name, spans in self.intervals.items():
            spans = sorted(spans)
            for (s1, e1), (s2, e2) in zip(spans, spans[1:]):
                if s2 < e1:
                    found.append((name, (s1, e1), (s2, e2)))
        return found


class RecordingEventLog:
    """ProgressTracker that keeps stages and tracked labels in memory"""

    def __init__(self):
        self.stages = []
        self.tracked = []
        self.failed = []
        self._lock = threading.Lock()

    def begin_stage(self, stage, total):
        self.stages.append((stage, total))

    @contextmanager
    def track(self, label, stage=None):
        try:
            yield
        except Exception:
            with self._lock:
                self.failed.append(label)
            raise
        with self._lock:
            self.tracked.append((stage, label))

    def close(self):
        pass


@pytest.fixture
def fake_director():
    return FakeDirector()


@pytest.fixture
def lock_provider():
    return RecordingLockProvider()


@pytest.fixture
def event_log():
    return RecordingEventLog()
