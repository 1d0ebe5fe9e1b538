"""Shared test doubles."""

from types import SimpleNamespace

import pytest


class DummyScheduler:
    """Records jobs instead of running them; tests fire jobs explicitly."""

    def __init__(self) -> None:
        self.jobs = {}
        self.running = False

    def add_job(self, func, trigger, id=None, replace_existing=False, **kwargs):
        job = SimpleNamespace(func=func, trigger=trigger, id=id, kwargs=kwargs)
        self.jobs[id] = job
        return job

    def get_job(self, job_id):
        return self.jobs.get(job_id)

    def remove_job(self, job_id) -> None:
        del self.jobs[job_id]

    async def fire(self, job_id) -> None:
        """Run a job once; one-shot ``date`` jobs are removed first."""
        job = self.jobs[job_id]
        if job.trigger == "date":
            del self.jobs[job_id]
        await job.func(*job.kwargs.get("args", []))


@pytest.fixture
def scheduler() -> DummyScheduler:
    return DummyScheduler()
