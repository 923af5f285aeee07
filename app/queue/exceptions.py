class QueueError(Exception):
    """Base exception for job queue operations."""


class JobAlreadyExistsError(QueueError):
    """Raised by ``JobQueue.add`` when a live job with the same id exists."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job already exists: {job_id}")
        self.job_id = job_id
