"""Unit tests for utils/event_log.py"""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))

from utils.event_log import EventLog  # noqa: E402


class TestEventLog:
    """Tests for stage and task events"""

    def test_records_stage_and_task_events(self):
        event_log = EventLog(show_progress=False, record_events=True)

        event_log.begin_stage("Deleting releases", 1)
        with event_log.track("Deleting release a/1"):
            pass

        assert [(e["stage"], e["state"]) for e in event_log.events] == [
            ("Deleting releases", "begin"),
            ("Deleting releases", "started"),
            ("Deleting releases", "finished"),
        ]
        assert event_log.events[0]["total"] == 1

    def test_failed_task_is_recorded_and_reraised(self):
        event_log = EventLog(show_progress=False, record_events=True)
        event_log.begin_stage("Deleting orphaned disks", 1)

        with pytest.raises(RuntimeError):
            with event_log.track("Deleting orphaned disk d1"):
                raise RuntimeError("volume busy")

        failed = event_log.events[-1]
        assert failed["state"] == "failed"
        assert failed["task"] == "Deleting orphaned disk d1"
        assert failed["error"] == "volume busy"

    def test_explicit_stage_overrides_current_stage(self):
        event_log = EventLog(show_progress=False, record_events=True)
        event_log.begin_stage("Deleting releases", 1)
        event_log.begin_stage("Deleting stemcells", 0)

        with event_log.track("Deleting release a/1", stage="Deleting releases"):
            pass

        assert event_log.events[-1]["stage"] == "Deleting releases"

    def test_events_not_kept_by_default(self):
        """A production run keeps no per-task history"""
        event_log = EventLog(show_progress=False)

        event_log.begin_stage("Deleting releases", 2)
        for label in ("Deleting release a/1", "Deleting release a/2"):
            with event_log.track(label):
                pass

        assert event_log.events == []

    @patch("utils.event_log.tqdm.tqdm")
    def test_progress_bar_per_stage(self, mock_tqdm):
        event_log = EventLog(show_progress=True)

        event_log.begin_stage("Deleting releases", 2)
        event_log.begin_stage("Deleting stemcells", 0)
        with event_log.track("Deleting release a/1", stage="Deleting releases"):
            pass
        event_log.close()

        mock_tqdm.assert_called_once_with(total=2, desc="Deleting releases", leave=True)
        bar = mock_tqdm.return_value
        bar.update.assert_called_once_with(1)
        bar.close.assert_called_once()
