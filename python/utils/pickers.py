"""
Retention pickers: which release and stemcell versions a cleanup may delete.

The metadata store decides what counts as in use and returns versions oldest
first; a picker only applies the retention count per name.
"""

from typing import Any, Dict, List, Sequence

from utils.artifacts import ArtifactReference
from utils.logging_utils import get_logger

logger = get_logger(__name__)


def validate_keep_count(keep_count: int) -> None:
    if not isinstance(keep_count, int) or keep_count < 0:
        raise ValueError(f"keep_count must be a non-negative integer, got: {keep_count}")


def versions_to_delete(versions: Sequence[str], keep_count: int) -> List[str]:
    """Everything except the newest ``keep_count`` entries of an oldest-first list"""
    validate_keep_count(keep_count)
    if len(versions) <= keep_count:
        return []
    return list(versions[: len(versions) - keep_count])


class ReleasesToDeletePicker:
    def __init__(self, release_manager):
        self.release_manager = release_manager

    def pick(self, keep_count: int) -> List[ArtifactReference]:
        validate_keep_count(keep_count)
        picked = []
        for release in self.release_manager.get_all_releases():
            unused = [v["version"] for v in release["release_versions"] if not v.get("currently_deployed")]
            for version in versions_to_delete(unused, keep_count):
                picked.append(ArtifactReference.release(release["name"], version))
        logger.debug(f"Picked {len(picked)} release version(s) with keep_count={keep_count}")
        return picked


class StemcellsToDeletePicker:
    def __init__(self, stemcell_manager):
        self.stemcell_manager = stemcell_manager

    def pick(self, keep_count: int) -> List[ArtifactReference]:
        validate_keep_count(keep_count)
        stemcells: List[Dict[str, Any]] = [
            s for s in self.stemcell_manager.get_all_stemcells() if not s.get("deployments")
        ]
        by_name: Dict[str, List[str]] = {}
        for stemcell in stemcells:
            by_name.setdefault(stemcell["name"], []).append(stemcell["version"])
        picked = []
        for name, versions in by_name.items():
            for version in versions_to_delete(versions, keep_count):
                picked.append(ArtifactReference.stemcell(name, version))
        logger.debug(f"Picked {len(picked)} stemcell version(s) with keep_count={keep_count}")
        return picked
