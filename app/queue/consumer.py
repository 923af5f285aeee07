import json
import uuid
from typing import Any

import redis

from app.logging.logger import Log
from app.queue import scripts
from app.queue.job_queue import now_ms
from app.queue.models import Job, JobOptions, JobState, QueueKeys, StalledJobs


class JobConsumer:
    """Consumer side of the preprocessing queue.

    A fetched job holds a lock for ``timeout_seconds``. Completing or failing
    a job requires the lock token; a job whose lock expired is considered
    stalled and counts as a failed attempt.
    """

    PROMOTE_BATCH = 100
    STALLED_REASON = "job stalled or exceeded its timeout"

    def __init__(self, connection: redis.Redis, name: str, options: JobOptions) -> None:
        self._redis = connection
        self._keys = QueueKeys.for_queue(name)
        self._options = options
        self._promote = connection.register_script(scripts.PROMOTE_DELAYED)
        self._mark_active = connection.register_script(scripts.MARK_ACTIVE)
        self._finish = connection.register_script(scripts.FINISH_JOB)
        self._retry_later = connection.register_script(scripts.RETRY_LATER)
        self._requeue_stalled = connection.register_script(scripts.REQUEUE_STALLED)

    @property
    def options(self) -> JobOptions:
        return self._options

    def fetch_next(self, timeout_seconds: float) -> Job | None:
        """Block up to ``timeout_seconds`` for the next job and lock it."""
        self._promote(
            keys=[self._keys.delayed, self._keys.wait],
            args=[now_ms(), self._keys.job_prefix, self.PROMOTE_BATCH],
        )
        job_id = self._redis.blmove(
            self._keys.wait, self._keys.active, timeout_seconds, "RIGHT", "LEFT"
        )
        if job_id is None:
            return None

        token = uuid.uuid4().hex
        raw = self._mark_active(
            keys=[self._keys.job(job_id), self._keys.lock(job_id), self._keys.active],
            args=[job_id, token, int(self._options.timeout_seconds * 1000), now_ms()],
        )
        if not raw:
            Log.warning(f"Job {job_id} vanished before it could start")
            return None
        it = iter(raw)
        return Job.from_hash(dict(zip(it, it)), token=token)

    def complete(self, job: Job, return_value: dict[str, Any]) -> bool:
        """Record a terminal result. False if the job lost its lock meanwhile."""
        return self._finish_job(
            job,
            JobState.COMPLETED.value,
            self._keys.completed,
            self._options.keep_completed,
            ["return_value", json.dumps(return_value)],
        )

    def fail(self, job: Job, reason: str) -> bool:
        """Record a failed attempt: retry with backoff, or dead-letter when exhausted."""
        attempts_made = job.attempts_made + 1
        if attempts_made < job.max_attempts:
            delay = self._options.retry_delay_seconds(attempts_made)
            result = self._retry_later(
                keys=[
                    self._keys.job(job.id),
                    self._keys.active,
                    self._keys.delayed,
                    self._keys.lock(job.id),
                ],
                args=[
                    job.id,
                    job.token or "",
                    now_ms() + int(delay * 1000),
                    attempts_made,
                    reason,
                ],
            )
            if int(result) == -1:
                Log.warning(f"Job {job.id} lost its lock before retry could be scheduled")
                return False
            Log.warning(
                f"Job {job.id} attempt {attempts_made}/{job.max_attempts} failed, "
                f"retrying in {delay:.0f}s: {reason}"
            )
            return True

        Log.error(f"Job {job.id} failed after {attempts_made} attempts: {reason}")
        return self._finish_job(
            job,
            JobState.FAILED.value,
            self._keys.failed,
            self._options.keep_failed,
            ["attempts_made", str(attempts_made), "failed_reason", reason],
        )

    def recover_stalled(self, startup: bool = False) -> StalledJobs:
        """Handle active jobs whose lock expired.

        A stall counts as a failed attempt: the job is retried with backoff
        or moved to the failed list once attempts run out. At startup no job
        of this process is in flight, so jobs that were popped but never
        marked active go back to the wait list too.
        """
        requeued, dead = self._requeue_stalled(
            keys=[
                self._keys.active,
                self._keys.wait,
                self._keys.delayed,
                self._keys.failed,
            ],
            args=[
                self._keys.job_prefix,
                self._keys.lock_prefix,
                "1" if startup else "0",
                now_ms(),
                int(self._options.backoff_seconds * 1000),
                self._options.keep_failed,
                self.STALLED_REASON,
            ],
        )
        stalled = StalledJobs(
            requeued=[str(job_id) for job_id in requeued],
            failed=[str(job_id) for job_id in dead],
        )
        if stalled.requeued:
            Log.warning(
                f"Requeued {len(stalled.requeued)} stalled job(s): {', '.join(stalled.requeued)}"
            )
        if stalled.failed:
            Log.error(
                f"Stalled job(s) out of attempts, moved to failed: {', '.join(stalled.failed)}"
            )
        return stalled

    def _finish_job(
        self,
        job: Job,
        state: str,
        finished_list: str,
        keep: int,
        fields: list[str],
    ) -> bool:
        result = self._finish(
            keys=[
                self._keys.job(job.id),
                self._keys.active,
                finished_list,
                self._keys.lock(job.id),
            ],
            args=[job.id, job.token or "", state, now_ms(), keep, self._keys.job_prefix, *fields],
        )
        if int(result) == -1:
            Log.warning(f"Job {job.id} lost its lock, result discarded")
            return False
        return True
