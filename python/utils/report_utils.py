"""
Outcome collection and report generation for cleanup runs.

This module provides:
- A thread-safe, append-only log of deletion outcomes
- The cleanup summary ("stemcell(s) deleted: ...; release(s) deleted: ...")
- A tabulated per-artifact view and JSON report saving
"""
import json
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId
from tabulate import tabulate

from utils.artifacts import ArtifactKind, ArtifactReference, DeletionOutcome
from utils.logging_utils import get_logger

logger = get_logger(__name__)

NONE_CLAUSE = "none"


# ============================================================================
# Outcome Accumulation
# ============================================================================

class OutcomeLog:
    """Append-only outcome store written concurrently by deletion tasks"""

    def __init__(self):
        self._lock = threading.Lock()
        self._outcomes: List[DeletionOutcome] = []

    def record(self, outcome: DeletionOutcome) -> None:
        with self._lock:
            self._outcomes.append(outcome)

    def snapshot(self) -> List[DeletionOutcome]:
        """Outcomes ordered by submission sequence"""
        with self._lock:
            return sorted(self._outcomes, key=lambda o: o.sequence)

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)


# ============================================================================
# Summary Formatting
# ============================================================================

def format_clause(artifacts: Sequence[ArtifactReference]) -> str:
    """Comma-joined labels, or "none" when nothing was deleted"""
    if not artifacts:
        return NONE_CLAUSE
    return ", ".join(artifact.label for artifact in artifacts)


@dataclass
class CleanupReport:
    """Summary of one cleanup run, built after every task has finished.

    Each clause lists the artifacts that were deleted (or were already gone),
    in the order the pickers returned them.
    """

    candidates: Dict[ArtifactKind, List[ArtifactReference]]
    outcomes: List[DeletionOutcome]
    include_disks: bool = False
    deleted: Dict[ArtifactKind, List[ArtifactReference]] = field(init=False)

    def __post_init__(self):
        succeeded = {o.artifact for o in self.outcomes if o.succeeded}
        self.deleted = {
            kind: [a for a in self.candidates.get(kind, []) if a in succeeded]
            for kind in ArtifactKind
        }

    @property
    def failures(self) -> List[DeletionOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def skipped(self) -> List[DeletionOutcome]:
        return [o for o in self.outcomes if o.succeeded and o.skipped]

    def clause(self, kind: ArtifactKind) -> str:
        return format_clause(self.deleted[kind])

    def summary(self) -> str:
        result = (
            f"stemcell(s) deleted: {self.clause(ArtifactKind.STEMCELL)}; "
            f"release(s) deleted: {self.clause(ArtifactKind.RELEASE)}"
        )
        if self.include_disks:
            result += f"; orphaned disk(s) deleted: {self.clause(ArtifactKind.DISK)}"
        return result

    def counts(self) -> Dict[str, int]:
        return {
            "total": len(self.outcomes),
            "deleted": sum(1 for o in self.outcomes if o.succeeded and not o.skipped),
            "already_gone": len(self.skipped),
            "failed": len(self.failures),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.summary(),
            "generated_at": datetime.now(),
            "counts": self.counts(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


def format_outcomes_table(outcomes: Sequence[DeletionOutcome]) -> str:
    """Render outcomes as a grid table"""
    headers = ["Kind", "Artifact", "Status", "Error"]
    rows = []
    for outcome in outcomes:
        row = outcome.to_dict()
        error = row["error"] or ""
        if len(error) > 80:
            error = error[:77] + "..."
        rows.append([row["kind"], row["artifact"], row["status"], error])
    return tabulate(rows, headers=headers, tablefmt="grid")


# ============================================================================
# Report Saving Functions
# ============================================================================

def get_timestamp_suffix() -> str:
    """
    Generate a timestamp suffix for report filenames.

    Returns:
        String in format: YYYY-MM-DD-HH-MM-SS
    """
    return datetime.now().strftime("%Y-%m-%d-%H-%M-%S")


def add_timestamp_to_path(path: str, timestamp: Optional[str] = None) -> str:
    """
    Add a timestamp to a file path before the extension.

    Args:
        path: Original file path (e.g., 'reports/cleanup.json')
        timestamp: Optional timestamp string (defaults to current time)

    Returns:
        Path with timestamp inserted (e.g., 'reports/cleanup-2026-01-15-14-30-00.json')
    """
    if timestamp is None:
        timestamp = get_timestamp_suffix()
    p = Path(path)
    return str(p.parent / f"{p.stem}-{timestamp}{p.suffix}")


def _to_jsonable(data: Any) -> Any:
    """Recursively convert values json can't serialize (ObjectId, datetime, sets, enums)"""
    if isinstance(data, ObjectId):
        return str(data)
    elif isinstance(data, (datetime, date)):
        return data.isoformat()
    elif isinstance(data, Enum):
        return data.value
    elif isinstance(data, (set, frozenset)):
        try:
            return [_to_jsonable(item) for item in sorted(data)]
        except TypeError:
            return [_to_jsonable(item) for item in data]
    elif isinstance(data, dict):
        return {str(_to_jsonable(k)): _to_jsonable(v) for k, v in data.items()}
    elif isinstance(data, (list, tuple)):
        return [_to_jsonable(item) for item in data]
    return data


def save_json(path: str, data: Any, timestamp: bool = False) -> str:
    """
    Write JSON data to a file with indentation.

    Args:
        path: Path to save the JSON file
        data: Data to save
        timestamp: If True, add timestamp to filename

    Returns:
        Path to the saved file
    """
    p = Path(path)
    if timestamp:
        p = Path(add_timestamp_to_path(str(p)))

    p.parent.mkdir(parents=True, exist_ok=True)

    with open(p, "w") as f:
        json.dump(_to_jsonable(data), f, indent=2)
    logger.info(f"Saved JSON to {p}")
    return str(p)
