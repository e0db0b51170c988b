"""Tests for :mod:`gdprguard.workers.scan_worker`.

All tests run against the Celery application in **eager mode** so no broker
or worker process is required.  The object store is an
:class:`InMemoryObjectStore`, the record store a dict-backed recorder, and
``update_state`` is patched so no result backend is contacted.

Coverage targets
----------------
* Folder scan returns ``BulkScanResult.to_dict()``.
* Progress is published as ``PROGRESS`` state before each file.
* Per-file failures are reported in the result, not raised.
* Transient connection errors are retried up to ``max_retries``.
* Report generation task parses ISO timestamps and returns the report id.
* Tasks are registered on the Celery app under their explicit names.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gdprguard.celery_app import celery_app
from gdprguard.core.adapters import InMemoryObjectStore
from gdprguard.workers.scan_worker import generate_report_task, scan_folder_task


# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------


class _Records:
    def __init__(self):
        self.records = {}

    async def upsert_scan_record(self, file_path, record):
        self.records[file_path] = record


@pytest.fixture(autouse=True)
def celery_eager():
    """Force Celery to execute tasks eagerly (synchronously, in-process)."""
    celery_app.conf.update(task_always_eager=True, task_eager_propagates=False)
    yield
    celery_app.conf.update(task_always_eager=False, task_eager_propagates=False)


@pytest.fixture
def update_state():
    with patch("celery.app.task.Task.update_state") as mock:
        yield mock


def _patch_collaborators(store, records):
    return (
        patch("gdprguard.workers.scan_worker._build_object_store", return_value=store),
        patch("gdprguard.workers.scan_worker._build_record_store", return_value=records),
    )


# ---------------------------------------------------------------------------
# scan_folder_task
# ---------------------------------------------------------------------------


class TestScanFolderTask:
    def test_returns_bulk_result_dict(self, update_state):
        store = InMemoryObjectStore(
            {
                "hr/contacts.txt": b"Contact me at jane.doe@example.com or 555-123-4567",
                "hr/readme.txt": b"nothing here",
            }
        )
        records = _Records()
        store_patch, records_patch = _patch_collaborators(store, records)

        with store_patch, records_patch:
            result = scan_folder_task.apply(args=["hr"]).get()

        assert result["success"] is True
        assert result["total_files"] == 2
        assert result["scanned_files"] == 2
        assert result["files_with_personal_data"] == 1
        assert result["errors"] == 0
        assert set(records.records) == {"hr/contacts.txt", "hr/readme.txt"}

    def test_progress_published(self, update_state):
        store = InMemoryObjectStore({"a/1.txt": b"x", "a/2.txt": b"y"})
        store_patch, records_patch = _patch_collaborators(store, _Records())

        with store_patch, records_patch:
            scan_folder_task.apply(args=["a"]).get()

        calls = update_state.call_args_list
        assert len(calls) == 4
        assert all(c.kwargs["state"] == "PROGRESS" for c in calls)
        assert calls[0].kwargs["meta"]["total_files"] == 2
        assert calls[1].kwargs["meta"]["current_file"] == "a/1.txt"
        assert calls[-1].kwargs["meta"]["status"] == "completed"

    def test_file_failures_do_not_fail_task(self, update_state):
        store = InMemoryObjectStore(
            {"a/1.txt": b"x", "a/2.txt": b"y"}, failing_objects={"a/2.txt"}
        )
        store_patch, records_patch = _patch_collaborators(store, _Records())

        with store_patch, records_patch:
            async_result = scan_folder_task.apply(args=["a"])

        assert async_result.successful()
        result = async_result.get()
        assert result["scanned_files"] == 1
        assert result["errors"] == 1
        assert any("a/2.txt" in e for e in result["error_details"])

    def test_unlistable_root_reports_failure(self, update_state):
        store = InMemoryObjectStore({"a/1.txt": b"x"}, failing_folders={"a"})
        store_patch, records_patch = _patch_collaborators(store, _Records())

        with store_patch, records_patch:
            result = scan_folder_task.apply(args=["a"]).get()

        assert result["success"] is False
        assert result["total_files"] == 0

    def test_store_is_closed(self, update_state):
        store = InMemoryObjectStore({"a/1.txt": b"x"})
        store.aclose = AsyncMock()
        store_patch, records_patch = _patch_collaborators(store, _Records())

        with store_patch, records_patch:
            scan_folder_task.apply(args=["a"]).get()

        store.aclose.assert_awaited_once()

    def test_transient_error_retried(self, update_state):
        """A transient ConnectionError causes the task to retry and ultimately fail."""
        celery_app.conf.task_eager_propagates = True

        call_count = 0

        def _failing_store(settings):
            nonlocal call_count
            call_count += 1
            raise ConnectionError("storage unreachable")

        with patch(
            "gdprguard.workers.scan_worker._build_object_store",
            side_effect=_failing_store,
        ):
            try:
                scan_folder_task.apply(args=["a"]).get()
            except (ConnectionError, Exception):
                pass  # Expected: task exhausts retries and raises

        # Called once per attempt: initial + 3 retries = 4 total.
        assert call_count == 4


# ---------------------------------------------------------------------------
# generate_report_task
# ---------------------------------------------------------------------------


class TestGenerateReportTask:
    def test_generates_report(self):
        report_id = uuid.uuid4()
        report = SimpleNamespace(
            id=report_id,
            report_type="monthly",
            status="completed",
            report_data={"files_with_personal_data": 7},
        )
        service = MagicMock()
        service.generate_and_store = AsyncMock(return_value=report)

        with patch("gdprguard.workers.scan_worker._build_report_service", return_value=service):
            result = generate_report_task.apply(
                args=["monthly", "2026-06-01T00:00:00+00:00", "2026-06-30T23:59:59+00:00"],
                kwargs={"generated_by": "dpo"},
            ).get()

        assert result == {
            "report_id": str(report_id),
            "report_type": "monthly",
            "status": "completed",
            "files_with_personal_data": 7,
        }
        args, kwargs = service.generate_and_store.call_args
        assert args[0] == "monthly"
        assert args[1] == datetime.fromisoformat("2026-06-01T00:00:00+00:00")
        assert kwargs["generated_by"] == "dpo"

    def test_invalid_timestamp_fails(self):
        async_result = generate_report_task.apply(args=["monthly", "yesterday", "today"])
        assert async_result.failed()
        assert isinstance(async_result.result, ValueError)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_tasks_registered(self):
        assert "gdprguard.workers.scan_worker.scan_folder_task" in celery_app.tasks
        assert "gdprguard.workers.scan_worker.generate_report_task" in celery_app.tasks

    def test_default_queue(self):
        assert celery_app.conf.task_default_queue == "gdprguard"
