"""
Integration tests for the dashboard API endpoints.
"""

from datetime import timedelta

import pytest_asyncio
from httpx import AsyncClient

from queuectl.constants import JobState
from queuectl.db import Database, JobRepository
from queuectl.utils import utcnow


class TestJobAPI:
    """Integration tests for job API endpoints."""

    @pytest_asyncio.fixture
    async def seeded(self, db: Database) -> None:
        """Two pending jobs and one dead one."""
        now = utcnow()
        async with db.session() as session:
            repo = JobRepository(session)
            await repo.enqueue("first", "echo 1", now=now - timedelta(seconds=3))
            await repo.enqueue("second", "echo 2", priority=5, now=now - timedelta(seconds=2))
            await repo.enqueue("broken", "exit 1", max_retries=1, now=now - timedelta(seconds=1))
            await repo.claim_next("w1", now=now)
            await repo.resolve(
                "second", JobState.DEAD, {"attempts": 1, "stderr": "boom"},
                worker_id="w1", now=now,
            )

    async def test_list_jobs(self, client: AsyncClient, seeded):
        """Test the dump has non-empty state counts and every job."""
        response = await client.get("/api/jobs")

        assert response.status_code == 200
        data = response.json()
        assert {item["state"]: item["count"] for item in data["summary"]} == {
            "pending": 2,
            "dead": 1,
        }
        assert [job["id"] for job in data["jobs"]] == ["second", "broken", "first"]

    async def test_list_jobs_by_state(self, client: AsyncClient, seeded):
        """Test filtering the job list by state."""
        response = await client.get("/api/jobs", params={"state": "dead"})

        assert response.status_code == 200
        jobs = response.json()["jobs"]
        assert len(jobs) == 1
        assert jobs[0]["id"] == "second"
        assert jobs[0]["stderr"] == "boom"
        assert jobs[0]["locked_by"] is None

    async def test_list_jobs_invalid_state(self, client: AsyncClient):
        """Test an unknown state is rejected."""
        response = await client.get("/api/jobs", params={"state": "sleeping"})

        assert response.status_code == 422

    async def test_list_jobs_empty(self, client: AsyncClient):
        """Test an empty queue."""
        response = await client.get("/api/jobs")

        assert response.status_code == 200
        assert response.json() == {"summary": [], "jobs": []}

    async def test_get_job(self, client: AsyncClient, seeded):
        """Test fetching one job."""
        response = await client.get("/api/jobs/first")

        assert response.status_code == 200
        data = response.json()
        assert data["command"] == "echo 1"
        assert data["state"] == "pending"
        assert data["attempts"] == 0

    async def test_get_job_not_found(self, client: AsyncClient):
        """Test getting a non-existent job."""
        response = await client.get("/api/jobs/missing")

        assert response.status_code == 404


class TestHealthAPI:
    """Tests for health and metrics endpoints."""

    async def test_health_check(self, client: AsyncClient):
        """Test an empty store reports every state with a zero count."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["store"] == "ok"
        assert data["jobs"] == {state.value: 0 for state in JobState}

    async def test_health_counts_jobs(self, client: AsyncClient, db: Database):
        """Test the health report carries the job count per state."""
        async with db.session() as session:
            repo = JobRepository(session)
            await repo.enqueue("a", "echo a")
            await repo.enqueue("b", "echo b")

        response = await client.get("/health")

        jobs = response.json()["jobs"]
        assert jobs["pending"] == 2
        assert jobs["processing"] == 0
        assert jobs["dead"] == 0

    async def test_metrics(self, client: AsyncClient):
        """Test Prometheus metrics endpoint."""
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "queuectl_jobs_claimed" in response.text
        assert "queuectl_jobs_enqueued" not in response.text
