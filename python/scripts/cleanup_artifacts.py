#!/usr/bin/env python3
"""
Delete stale release versions, stemcells and (optionally) orphaned disks.

The most recent versions of every release and stemcell are kept (two by
default); versions used by a deployment are never picked. With
--remove-all every unused version is deleted and orphaned disks are purged
as well.

Deletions run in parallel on a bounded thread pool. A release is deleted
while holding its release lock, so a concurrent deploy cannot pick up a
version that is halfway deleted. One failed deletion never stops the
others: the summary lists everything that was deleted and the job exits
non-zero if anything failed.

Usage examples:
  # Keep the two newest versions of each release and stemcell
  python cleanup_artifacts.py

  # Delete every unused release/stemcell version and all orphaned disks
  python cleanup_artifacts.py --remove-all

  # Limit cloud API pressure
  python cleanup_artifacts.py --remove-all --max-threads 4

  # Custom config and report location
  python cleanup_artifacts.py --config /etc/cleaner/config.yaml --output reports/cleanup.json
"""

import argparse
import itertools
import sys
from typing import Any, Callable, Dict, List, Optional

from utils.artifacts import ArtifactKind, ArtifactReference, DeletionOutcome, DeletionTask, RetentionPolicy
from utils.cloud_client import create_cloud_client
from utils.config_manager import ConfigManager, ConfigValidationError, parse_bool
from utils.deleters import DiskManager, NameVersionReleaseDeleter, StemcellDeleter
from utils.director_store import DirectorStore
from utils.error_utils import ActionableError, CleanupRunError, NotFoundError
from utils.event_log import EventLog
from utils.interfaces import (
    DiskDeleter,
    DiskLister,
    LockProvider,
    ProgressTracker,
    ReleaseDeleter,
    RetentionPicker,
    StemcellDeleter as StemcellDeleterInterface,
    StemcellLookup,
)
from utils.logging_utils import get_logger, log_exception, setup_logging
from utils.pickers import ReleasesToDeletePicker, StemcellsToDeletePicker
from utils.report_utils import CleanupReport, OutcomeLog, format_outcomes_table, save_json
from utils.resource_lock import DEFAULT_RELEASE_LOCK_TIMEOUT, NamedResourceLock, ReleaseLockProvider
from utils.task_pool import ConcurrentTaskPool

RELEASES_STAGE = "Deleting releases"
STEMCELLS_STAGE = "Deleting stemcells"
DISKS_STAGE = "Deleting orphaned disks"


class CleanupArtifacts:
    """Background job that garbage-collects releases, stemcells and orphaned disks"""

    JOB_TYPE = "delete_artifacts"

    def __init__(
        self,
        config: Dict[str, Any],
        release_picker: RetentionPicker,
        stemcell_picker: RetentionPicker,
        release_deleter: ReleaseDeleter,
        stemcell_lookup: StemcellLookup,
        stemcell_deleter: StemcellDeleterInterface,
        disk_lister: DiskLister,
        disk_deleter: DiskDeleter,
        lock_provider: LockProvider,
        pool: ConcurrentTaskPool,
        event_log: ProgressTracker,
        release_lock_timeout: float = DEFAULT_RELEASE_LOCK_TIMEOUT,
        keep_count: int = 2,
    ):
        self.config = config or {}
        self._remove_all = parse_bool(self.config.get("remove_all", False), "remove_all")
        self.release_picker = release_picker
        self.stemcell_picker = stemcell_picker
        self.release_deleter = release_deleter
        self.stemcell_lookup = stemcell_lookup
        self.stemcell_deleter = stemcell_deleter
        self.disk_lister = disk_lister
        self.disk_deleter = disk_deleter
        self.lock_provider = lock_provider
        self.pool = pool
        self.event_log = event_log
        self.release_lock_timeout = release_lock_timeout
        self.keep_count = keep_count
        self.logger = get_logger(self.__class__.__name__)

    @classmethod
    def enqueue(cls, username: str, config: Dict[str, Any], job_queue):
        return job_queue.enqueue(username, cls, "delete artifacts", [config])

    @property
    def remove_all(self) -> bool:
        return self._remove_all

    def perform(self) -> str:
        """Run the cleanup and return the summary.

        Raises:
            CleanupRunError: after every task finished, if any deletion failed.
                ``error.result`` still holds the summary of what was deleted.
        """
        report = self.run()
        result = report.summary()
        failures = report.failures
        if failures:
            raise CleanupRunError(failures[0].error, len(failures), result, report.outcomes)
        return result

    def run(self) -> CleanupReport:
        """Run the cleanup and return the full report without raising for task failures"""
        policy = RetentionPolicy.for_run(self.remove_all, self.keep_count)
        self.logger.info(
            f"Starting {self.JOB_TYPE} (remove_all={self.remove_all}, keep_count={policy.keep_count}, "
            f"max_threads={self.pool.max_threads})"
        )

        outcomes = OutcomeLog()
        sequence = itertools.count()
        candidates: Dict[ArtifactKind, List[ArtifactReference]] = {}

        def submit(task: DeletionTask, stage: str, label: str, delete: Callable[[ArtifactReference], None]):
            pool.submit(self._run_task, task, next(sequence), stage, label, delete, outcomes)

        with self.pool.wrap() as pool:
            releases = self.release_picker.pick(policy.keep_count)
            candidates[ArtifactKind.RELEASE] = releases
            self.event_log.begin_stage(RELEASES_STAGE, len(releases))
            for release in releases:
                submit(
                    DeletionTask(release, lock_key=release.name),
                    RELEASES_STAGE,
                    f"Deleting release {release.label}",
                    self._delete_release,
                )

            # stemcells are deleted without a release lock
            stemcells = self.stemcell_picker.pick(policy.keep_count)
            candidates[ArtifactKind.STEMCELL] = stemcells
            self.event_log.begin_stage(STEMCELLS_STAGE, len(stemcells))
            for stemcell in stemcells:
                submit(
                    DeletionTask(stemcell),
                    STEMCELLS_STAGE,
                    f"Deleting stemcell {stemcell.label}",
                    self._delete_stemcell,
                )

            if self.remove_all:
                disks = [ArtifactReference.disk(d["disk_cid"]) for d in self.disk_lister.list_orphan_disks()]
                candidates[ArtifactKind.DISK] = disks
                self.event_log.begin_stage(DISKS_STAGE, len(disks))
                for disk in disks:
                    submit(DeletionTask(disk), DISKS_STAGE, f"Deleting orphaned disk {disk.id}", self._delete_disk)

        report = CleanupReport(candidates, outcomes.snapshot(), include_disks=self.remove_all)
        counts = report.counts()
        self.logger.info(
            f"Artifact cleanup finished: {counts['deleted']} deleted, {counts['already_gone']} already gone, "
            f"{counts['failed']} failed"
        )
        return report

    def _run_task(
        self,
        task: DeletionTask,
        sequence: int,
        stage: str,
        label: str,
        delete: Callable[[ArtifactReference], None],
        outcomes: OutcomeLog,
    ) -> DeletionOutcome:
        artifact = task.artifact

        def body() -> bool:
            return self._delete_tolerating_missing(delete, artifact)

        try:
            with self.event_log.track(label, stage=stage):
                if task.lock_key is not None:
                    skipped = self.lock_provider.with_lock(task.lock_key, self.release_lock_timeout, body)
                else:
                    skipped = body()
            outcome = DeletionOutcome(artifact, succeeded=True, skipped=skipped, sequence=sequence)
        except Exception as e:
            log_exception(self.logger, f"{label} failed", e)
            outcome = DeletionOutcome(artifact, succeeded=False, error=e, sequence=sequence)
        outcomes.record(outcome)
        return outcome

    def _delete_tolerating_missing(self, delete: Callable[[ArtifactReference], None], artifact: ArtifactReference) -> bool:
        """Delete ``artifact``; return True if it had already disappeared"""
        try:
            delete(artifact)
        except NotFoundError:
            self.logger.warning(f"{artifact.kind.value.capitalize()} {artifact.label} is already gone, skipping")
            return True
        return False

    def _delete_release(self, release: ArtifactReference) -> None:
        self.release_deleter.delete_by_name_version(release.name, release.version, False)

    def _delete_stemcell(self, stemcell: ArtifactReference) -> None:
        handle = self.stemcell_lookup.find_by_name_and_version(stemcell.name, stemcell.version)
        self.stemcell_deleter.delete(handle)

    def _delete_disk(self, disk: ArtifactReference) -> None:
        self.disk_deleter.delete_orphan_disk(disk.id)


def build_cleanup_job(
    config: Dict[str, Any],
    config_manager: ConfigManager,
    locks: Optional[NamedResourceLock] = None,
    max_threads: Optional[int] = None,
    show_progress: bool = True,
    store: Optional[DirectorStore] = None,
    cloud=None,
) -> CleanupArtifacts:
    """Wire a CleanupArtifacts job to the director database and cloud.

    Pass the process-wide ``locks`` registry when deploys run in the same
    process so both sides serialize on the same release locks.
    """
    store = store or DirectorStore.from_config(config_manager)
    cloud = cloud or create_cloud_client(config_manager)
    disk_manager = DiskManager(cloud, store)
    return CleanupArtifacts(
        config,
        release_picker=ReleasesToDeletePicker(store),
        stemcell_picker=StemcellsToDeletePicker(store),
        release_deleter=NameVersionReleaseDeleter(store),
        stemcell_lookup=store,
        stemcell_deleter=StemcellDeleter(cloud, store),
        disk_lister=disk_manager,
        disk_deleter=disk_manager,
        lock_provider=ReleaseLockProvider(locks or NamedResourceLock()),
        pool=ConcurrentTaskPool(max_threads or config_manager.get_max_threads()),
        event_log=EventLog(show_progress=show_progress),
        release_lock_timeout=config_manager.get_release_lock_timeout(),
        keep_count=config_manager.get_keep_count(),
    )


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Delete stale releases, stemcells and orphaned disks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Keep the newest versions (default: 2) of every release and stemcell
  python cleanup_artifacts.py

  # Delete all unused releases and stemcells, and purge orphaned disks
  python cleanup_artifacts.py --remove-all
        """,
    )
    parser.add_argument(
        "--remove-all",
        action="store_true",
        default=None,
        help="Delete every unused release/stemcell version and all orphaned disks",
    )
    parser.add_argument("--max-threads", type=int, help="Parallel deletions (default: cleanup.max_threads from config)")
    parser.add_argument("--config", help="Path to config.yaml (default: CONFIG_FILE env var or ./config.yaml)")
    parser.add_argument("--output", help="Where to write the JSON report (default: reports.cleanup_report from config)")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars")
    parser.add_argument("--log-level", help="Logging level (default: logging.level from config)")
    parser.add_argument("--print-config", action="store_true", help="Print the effective configuration and exit")
    return parser.parse_args()


def main() -> None:
    args = parse_arguments()
    setup_logging(args.log_level or "INFO")
    logger = get_logger(__name__)

    try:
        config_manager = ConfigManager(config_file=args.config)
    except ConfigValidationError as e:
        logger.error(str(e))
        sys.exit(2)

    if not args.log_level:
        setup_logging(config_manager.get_log_level())

    if args.print_config:
        config_manager.print_config()
        return

    remove_all = config_manager.get_remove_all_default() if args.remove_all is None else args.remove_all
    config = {"remove_all": remove_all}

    try:
        job = build_cleanup_job(
            config,
            config_manager,
            max_threads=args.max_threads,
            show_progress=not args.no_progress,
        )
    except (ActionableError, ConfigValidationError, ValueError) as e:
        logger.error(str(e))
        sys.exit(2)

    try:
        report = job.run()
    finally:
        job.event_log.close()

    print(report.summary())
    if report.outcomes:
        print(format_outcomes_table(report.outcomes))

    output = args.output or config_manager.get_cleanup_report_path()
    save_json(output, report.to_dict(), timestamp=args.output is None)

    failures = report.failures
    if failures:
        logger.error(f"{len(failures)} deletion(s) failed; first failure: {failures[0].error}")
        sys.exit(1)


if __name__ == "__main__":
    main()
