from app.logging.logger import Log
from app.processor.models import Retryable, Terminal
from app.processor.processor import Processor
from app.queue.consumer import JobConsumer
from app.queue.models import Job


class JobRunner:
    """Run one job and report the outcome to the broker.

    ``Terminal`` results complete the job; ``Retryable`` results and anything
    that escapes the processor count as a failed attempt, which the broker
    retries with backoff until attempts run out.
    """

    def __init__(self, processor: Processor, consumer: JobConsumer) -> None:
        self._processor = processor
        self._consumer = consumer

    def run(self, job: Job) -> None:
        Log.info(f"Running job {job.id} (attempt {job.attempts_made + 1}/{job.max_attempts})")
        try:
            result = self._processor.process(job.document_id)
        except Exception as exc:
            result = Retryable(exc)

        if isinstance(result, Terminal):
            self._consumer.complete(job, result.outcome.to_dict())
            Log.info(f"Job {job.id} finished: {result.outcome.status}")
        else:
            self._handle_failure(job, result.cause)

    def _handle_failure(self, job: Job, exc: Exception) -> None:
        Log.error(f"Job {job.id} failed: {exc}")
        self._consumer.fail(job, f"{type(exc).__name__}: {exc}")
