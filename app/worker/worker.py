import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor

from app.config.settings import Settings
from app.logging.logger import Log
from app.queue.consumer import JobConsumer
from app.queue.models import Job
from app.worker.job_runner import JobRunner


class Worker:
    """Poll loop: wait for a free slot -> claim -> dispatch to the pool."""

    def __init__(
        self,
        consumer: JobConsumer,
        job_runner: JobRunner,
        settings: Settings,
    ) -> None:
        self._consumer = consumer
        self._job_runner = job_runner
        self._settings = settings
        self._slots = threading.BoundedSemaphore(settings.worker_concurrency)
        self._last_stalled_check = time.monotonic()

    def run(
        self,
        stop_event: threading.Event | None = None,
        max_jobs: int | None = None,
    ) -> None:
        """Main poll loop. Runs until ``stop_event`` is set or interrupted.

        In-flight jobs are always allowed to finish before this returns.
        If max_jobs is set, stop after dispatching that many jobs (for testing).
        """
        stop = stop_event or threading.Event()
        Log.info(f"Worker started, concurrency={self._settings.worker_concurrency}")
        jobs_done = 0
        executor = ThreadPoolExecutor(
            max_workers=self._settings.worker_concurrency,
            thread_name_prefix="job",
        )
        try:
            while not stop.is_set():
                if max_jobs is not None and jobs_done >= max_jobs:
                    break
                if not self._slots.acquire(timeout=1):
                    continue
                if stop.is_set():
                    self._slots.release()
                    break
                self._maybe_recover_stalled()
                job = self._try_claim_job()
                if job is None:
                    self._slots.release()
                    continue
                future = executor.submit(self._job_runner.run, job)
                future.add_done_callback(self._release_slot)
                jobs_done += 1
        except KeyboardInterrupt:
            Log.info("Worker interrupted")
        finally:
            Log.info("Worker stopping, waiting for in-flight jobs")
            executor.shutdown(wait=True)
            Log.info("Worker stopped")

    def _release_slot(self, future: "Future[None]") -> None:
        self._slots.release()
        exc = future.exception()
        if exc is not None:
            Log.error(f"Job execution crashed: {exc}")

    def _try_claim_job(self) -> Job | None:
        """Attempt to claim the next job. Broker errors are logged and retried."""
        try:
            return self._consumer.fetch_next(self._settings.job_poll_interval_seconds)
        except Exception as exc:
            Log.warning(f"Broker error while claiming job, will retry: {exc}")
            time.sleep(1)
            return None

    def _maybe_recover_stalled(self) -> None:
        now = time.monotonic()
        if now - self._last_stalled_check < self._settings.stalled_check_interval_seconds:
            return
        self._last_stalled_check = now
        try:
            self._consumer.recover_stalled()
        except Exception as exc:
            Log.warning(f"Stalled job check failed: {exc}")
