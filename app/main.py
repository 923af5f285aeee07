import signal
from types import FrameType

from app.broker.redis_adapter import RedisConnectionManager
from app.config.settings import Settings
from app.database.connection import apply_schema, close_pool, init_pool
from app.database.repositories.chunks_repository import ChunksRepository
from app.database.repositories.documents_repository import DocumentsRepository
from app.documents.service import DocumentService
from app.logging.logger import Log
from app.queue.job_queue import JobQueue
from app.queue.models import JobOptions
from app.storage.factory import BlobStoreFactory
from app.supervisor.supervisor import Supervisor
from app.worker.entry import run_worker_process


def main() -> None:
    """Primary process: own the producer side and supervise one worker process.

    The document service built here is what a request layer mounts; it only
    ever enqueues. Shutdown order: request side, worker, producer queue,
    broker connections, database pool.
    """
    settings = Settings()
    Log.configure(settings.log_level, role="primary")
    init_pool(settings)
    if settings.db_apply_schema:
        apply_schema()

    broker = RedisConnectionManager(settings)
    queue = JobQueue(
        broker.new_producer_connection(),
        settings.queue_name,
        JobOptions.from_settings(settings),
    )
    documents = DocumentService(
        BlobStoreFactory.create(settings),
        DocumentsRepository(),
        ChunksRepository(),
        queue,
    )
    supervisor = Supervisor(settings, run_worker_process)

    def _on_signal(signum: int, _frame: FrameType | None) -> None:
        Log.info(f"{signal.Signals(signum).name} received, shutting down")
        supervisor.request_shutdown()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        supervisor.start()
        supervisor.monitor()
    finally:
        documents.close()
        supervisor.shutdown()
        queue.close()
        broker.close()
        close_pool()
        Log.info("Shutdown complete")


if __name__ == "__main__":
    main()
