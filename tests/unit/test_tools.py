# tests/unit/test_tools.py
"""
Integration tests for the tool layer.

Exercises submit_job, list_jobs, get_job and cancel_job against a real
JobQueue backed by a temporary JSON store.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from fastmcp.exceptions import ToolError

from plugin_jobs.models.jobs import JobStatus
from plugin_jobs.models.json_store import JsonFileJobStore
from plugin_jobs.models.queue import JobQueue
from plugin_jobs.tools import cancel_job, get_job, list_jobs, submit_job


@pytest_asyncio.fixture
async def queue(tmp_path: Path) -> JobQueue:
    store = JsonFileJobStore(tmp_path / "jobs.json")
    await store.initialize()
    queue = JobQueue(store)
    await queue.initialize()
    return queue


@pytest.mark.asyncio
async def test_submit_job_returns_queued(queue: JobQueue):
    result = await submit_job(
        "install", None, "https://example.com/Foo.jar", {"autoUpdate": True}, queue=queue
    )

    assert result["status"] == "queued"
    assert result["action"] == "install"
    assert result["job_id"].startswith("job-")
    assert "get_job" in result["next_steps"]
    assert result["created_at"]


@pytest.mark.asyncio
async def test_submit_job_rejects_invalid(queue: JobQueue):
    with pytest.raises(ToolError):
        await submit_job("uninstall", None, None, None, queue=queue)

    assert await queue.list_jobs() == []


@pytest.mark.asyncio
async def test_get_job_full_record(queue: JobQueue):
    submitted = await submit_job("enable", "Essentials", None, None, queue=queue)
    await queue.append_log(submitted["job_id"], "Download progress: 10%", percent=10)

    job = await get_job(submitted["job_id"], queue=queue)

    assert job["job_id"] == submitted["job_id"]
    assert job["plugin_name"] == "Essentials"
    assert job["status"] == "queued"
    assert job["logs"][-1] == {
        "timestamp": job["logs"][-1]["timestamp"],
        "message": "Download progress: 10%",
        "percent": 10,
    }
    assert job["error"] is None
    assert job["result"] is None


@pytest.mark.asyncio
async def test_get_job_failed_is_not_an_error(queue: JobQueue):
    submitted = await submit_job("enable", "Essentials", None, None, queue=queue)
    await queue.transition(submitted["job_id"], JobStatus.RUNNING)
    await queue.transition(
        submitted["job_id"], JobStatus.FAILED, error={"type": "ExecutorError", "message": "disk full"}
    )

    job = await get_job(submitted["job_id"], queue=queue)

    assert job["status"] == "failed"
    assert job["error"]["message"] == "disk full"


@pytest.mark.asyncio
async def test_get_job_not_found(queue: JobQueue):
    with pytest.raises(ToolError, match="not found"):
        await get_job("job-0-abcdef", queue=queue)


@pytest.mark.asyncio
async def test_list_jobs_filters(queue: JobQueue):
    first = await submit_job("enable", "A", None, None, queue=queue)
    second = await submit_job("disable", "B", None, None, queue=queue)
    await queue.transition(first["job_id"], JobStatus.RUNNING)

    worker = MagicMock()
    worker.current_job_id = first["job_id"]

    everything = await list_jobs(queue, worker=worker)
    assert [j["job_id"] for j in everything["jobs"]] == [second["job_id"], first["job_id"]]
    assert everything["total"] == 2
    assert everything["current_job_id"] == first["job_id"]

    running = await list_jobs(queue, status="running")
    assert [j["job_id"] for j in running["jobs"]] == [first["job_id"]]
    assert running["current_job_id"] is None

    limited = await list_jobs(queue, limit=1)
    assert limited["total"] == 1


@pytest.mark.asyncio
async def test_list_jobs_invalid_arguments(queue: JobQueue):
    with pytest.raises(ToolError):
        await list_jobs(queue, status="paused")
    with pytest.raises(ToolError):
        await list_jobs(queue, limit=0)


@pytest.mark.asyncio
async def test_cancel_job(queue: JobQueue):
    submitted = await submit_job("enable", "A", None, None, queue=queue)

    result = await cancel_job(submitted["job_id"], queue=queue)

    assert result["cancel_requested"] is True
    assert result["status"] == "queued"
    assert (await queue.get(submitted["job_id"])).cancel_requested


@pytest.mark.asyncio
async def test_cancel_finished_job(queue: JobQueue):
    submitted = await submit_job("enable", "A", None, None, queue=queue)
    await queue.transition(submitted["job_id"], JobStatus.CANCELLED)

    with pytest.raises(ToolError, match="Cannot cancel"):
        await cancel_job(submitted["job_id"], queue=queue)


@pytest.mark.asyncio
async def test_cancel_unknown_job(queue: JobQueue):
    with pytest.raises(ToolError, match="not found"):
        await cancel_job("job-0-abcdef", queue=queue)
