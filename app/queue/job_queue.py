import json
import time
from typing import Any

import redis

from app.logging.logger import Log
from app.queue import scripts
from app.queue.exceptions import JobAlreadyExistsError
from app.queue.models import Job, JobOptions, QueueKeys


def now_ms() -> int:
    return int(time.time() * 1000)


class JobQueue:
    """Producer side of the preprocessing queue.

    Job identity is the document id, so at most one live job exists per
    document; the broker rejects a second add while the first is waiting,
    delayed or active.
    """

    def __init__(self, connection: redis.Redis, name: str, options: JobOptions) -> None:
        self._redis = connection
        self._keys = QueueKeys.for_queue(name)
        self._options = options
        self._add_job = connection.register_script(scripts.ADD_JOB)
        self._remove_if_waiting = connection.register_script(scripts.REMOVE_IF_WAITING)

    @property
    def keys(self) -> QueueKeys:
        return self._keys

    def add(self, job_id: str, payload: dict[str, Any]) -> None:
        """Submit a job with an explicit id.

        Raises:
            JobAlreadyExistsError: a live job with this id is already queued.
        """
        added = self._add_job(
            keys=[
                self._keys.job(job_id),
                self._keys.wait,
                self._keys.completed,
                self._keys.failed,
            ],
            args=[job_id, json.dumps(payload), self._options.attempts, now_ms()],
        )
        if int(added) == 0:
            raise JobAlreadyExistsError(job_id)

    def enqueue(self, document_id: str) -> None:
        """Queue preprocessing for a document. A duplicate enqueue is a no-op."""
        job_id = str(document_id)
        try:
            self.add(job_id, {"document_id": job_id})
        except JobAlreadyExistsError:
            Log.info(f"Job already exists for document {job_id}, skipping enqueue")
            return
        Log.info(f"Enqueued preprocessing job {job_id}")

    def remove_if_waiting(self, job_id: str) -> bool:
        """Drop a job that has not started yet. Running jobs are left alone."""
        removed = self._remove_if_waiting(
            keys=[self._keys.job(job_id), self._keys.wait, self._keys.delayed],
            args=[job_id],
        )
        return int(removed) == 1

    def get_job(self, job_id: str) -> Job | None:
        data = self._redis.hgetall(self._keys.job(job_id))
        if not data:
            return None
        return Job.from_hash(data)  # type: ignore[arg-type]

    def counts(self) -> dict[str, int]:
        """Number of jobs per state, for logs and health output."""
        pipe = self._redis.pipeline(transaction=False)
        pipe.llen(self._keys.wait)
        pipe.zcard(self._keys.delayed)
        pipe.llen(self._keys.active)
        pipe.llen(self._keys.completed)
        pipe.llen(self._keys.failed)
        waiting, delayed, active, completed, failed = pipe.execute()
        return {
            "waiting": waiting,
            "delayed": delayed,
            "active": active,
            "completed": completed,
            "failed": failed,
        }

    def close(self) -> None:
        self._redis.close()
