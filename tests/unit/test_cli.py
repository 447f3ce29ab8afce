# tests/unit/test_cli.py
"""
CLI unit tests.

Tests each command via typer's CliRunner, with _get_queue patched to open a
job queue over a temporary JSON store.
"""

import asyncio
import json
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from plugin_jobs.cli import app
from plugin_jobs.models.jobs import JobAction, JobStatus
from plugin_jobs.models.json_store import JsonFileJobStore
from plugin_jobs.models.queue import JobQueue

runner = CliRunner()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store_path(tmp_path: Path):
    """Point the CLI at a temporary store; yields the store path."""
    path = tmp_path / "jobs.json"

    async def _get_queue():
        return JobQueue(JsonFileJobStore(path))

    with patch("plugin_jobs.cli._get_queue", new=_get_queue):
        yield path


def _seed(path: Path, *steps):
    """Run queue operations against the store outside of the CLI."""

    async def _go():
        queue = JobQueue(JsonFileJobStore(path))
        results = []
        for step in steps:
            results.append(await step(queue))
        return results

    return asyncio.run(_go())


def _load(path: Path, job_id: str):
    return asyncio.run(JobQueue(JsonFileJobStore(path)).get(job_id))


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestHelp:
    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "Durable job queue" in result.output

    def test_help_flag(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("submit", "list", "status", "cancel", "run", "serve"):
            assert command in result.output


class TestSubmit:
    def test_submit_queues_job(self, store_path):
        result = runner.invoke(
            app, ["submit", "install", "--url", "https://example.com/Foo.jar", "--auto-update"]
        )

        assert result.exit_code == 0
        assert "Queued install job: job-" in result.output
        assert "plugin-jobs run" in result.output

        job_id = result.output.split("Queued install job: ")[1].split()[0]
        record = _load(store_path, job_id)
        assert record.status is JobStatus.QUEUED
        assert record.options == {"autoUpdate": True}

    def test_submit_invalid_request(self, store_path):
        result = runner.invoke(app, ["submit", "uninstall"])
        assert result.exit_code == 1
        assert "Plugin name is required" in result.output


class TestList:
    def test_list_empty(self, store_path):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "No jobs found" in result.output

    def test_list_with_jobs(self, store_path):
        first, second = _seed(
            store_path,
            lambda q: q.enqueue(JobAction.ENABLE, "Essentials"),
            lambda q: q.enqueue(JobAction.DISABLE, "WorldEdit"),
        )

        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert first in result.output
        assert second in result.output
        assert result.output.index(second) < result.output.index(first)
        assert "Essentials" in result.output

    def test_list_status_filter(self, store_path):
        first, _ = _seed(
            store_path,
            lambda q: q.enqueue(JobAction.ENABLE, "Essentials"),
            lambda q: q.enqueue(JobAction.DISABLE, "WorldEdit"),
        )
        _seed(store_path, lambda q: q.transition(first, JobStatus.CANCELLED))

        result = runner.invoke(app, ["list", "--status", "cancelled"])

        assert result.exit_code == 0
        assert first in result.output
        assert "WorldEdit" not in result.output

    def test_list_invalid_status(self, store_path):
        result = runner.invoke(app, ["list", "--status", "paused"])
        assert result.exit_code == 1


class TestStatus:
    def test_status_shows_logs(self, store_path):
        (job_id,) = _seed(store_path, lambda q: q.enqueue(JobAction.ENABLE, "Essentials"))
        _seed(store_path, lambda q: q.append_log(job_id, "hello from the log"))

        result = runner.invoke(app, ["status", job_id])

        assert result.exit_code == 0
        assert job_id in result.output
        assert "queued" in result.output
        assert "hello from the log" in result.output

    def test_status_json(self, store_path):
        (job_id,) = _seed(store_path, lambda q: q.enqueue(JobAction.ENABLE, "Essentials"))

        result = runner.invoke(app, ["status", job_id, "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["plugin_name"] == "Essentials"

    def test_status_failed_exits_nonzero(self, store_path):
        (job_id,) = _seed(store_path, lambda q: q.enqueue(JobAction.ENABLE, "Essentials"))
        _seed(
            store_path,
            lambda q: q.transition(job_id, JobStatus.RUNNING),
            lambda q: q.transition(
                job_id, JobStatus.FAILED, error={"type": "ExecutorError", "message": "disk full"}
            ),
        )

        result = runner.invoke(app, ["status", job_id])

        assert result.exit_code == 1
        assert "disk full" in result.output

    def test_status_follow_finished_job(self, store_path):
        (job_id,) = _seed(store_path, lambda q: q.enqueue(JobAction.ENABLE, "Essentials"))
        _seed(
            store_path,
            lambda q: q.transition(job_id, JobStatus.RUNNING),
            lambda q: q.transition(job_id, JobStatus.COMPLETED, result={"plugin": "Essentials"}),
        )

        result = runner.invoke(app, ["status", job_id, "--follow"])

        assert result.exit_code == 0
        assert "completed" in result.output

    def test_status_not_found(self, store_path):
        result = runner.invoke(app, ["status", "job-0-abcdef"])
        assert result.exit_code == 1


class TestCancel:
    def test_cancel_queued_job(self, store_path):
        (job_id,) = _seed(store_path, lambda q: q.enqueue(JobAction.ENABLE, "Essentials"))

        result = runner.invoke(app, ["cancel", job_id])

        assert result.exit_code == 0
        assert "Cancellation requested" in result.output
        assert _load(store_path, job_id).cancel_requested

    def test_cancel_finished_job(self, store_path):
        (job_id,) = _seed(store_path, lambda q: q.enqueue(JobAction.ENABLE, "Essentials"))
        _seed(store_path, lambda q: q.transition(job_id, JobStatus.CANCELLED))

        result = runner.invoke(app, ["cancel", job_id])

        assert result.exit_code == 1
        assert "Cannot cancel" in result.output
