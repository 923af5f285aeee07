import signal
import sys
import threading
from multiprocessing.connection import Connection
from types import FrameType

from app.broker.redis_adapter import RedisConnectionManager
from app.config.settings import Settings
from app.database.connection import close_pool, init_pool
from app.database.repositories.documents_repository import DocumentsRepository
from app.logging.logger import Log
from app.processor.processor import build_processor
from app.queue.consumer import JobConsumer
from app.queue.job_queue import JobQueue
from app.queue.models import JobOptions
from app.recovery.orphan_sweep import OrphanRecoverySweep
from app.supervisor.messages import (
    Message,
    Ready,
    Shutdown,
    ShutdownComplete,
    StartupError,
    from_wire,
    to_wire,
)
from app.worker.job_runner import JobRunner
from app.worker.worker import Worker


def _send(channel: Connection, message: Message) -> None:
    try:
        channel.send(to_wire(message))
    except (BrokenPipeError, EOFError, OSError) as exc:
        Log.warning(f"Primary unreachable, dropped {message.type}: {exc}")


def _listen_for_shutdown(channel: Connection, stop: threading.Event) -> None:
    """Set ``stop`` on a Shutdown message or when the primary goes away."""
    while not stop.is_set():
        try:
            if not channel.poll(0.5):
                continue
            message = from_wire(channel.recv())
        except (EOFError, OSError):
            Log.warning("Lost channel to primary, shutting down")
            stop.set()
            return
        except ValueError as exc:
            Log.warning(str(exc))
            continue
        if isinstance(message, Shutdown):
            Log.info("Shutdown requested by primary")
            stop.set()


def run_worker_process(channel: Connection, settings: Settings) -> None:
    """Entry point of the forked worker process."""
    Log.configure(settings.log_level, role="worker")
    stop = threading.Event()

    def _on_signal(signum: int, _frame: FrameType | None) -> None:
        Log.info(f"Received {signal.Signals(signum).name}, shutting down")
        stop.set()

    signal.signal(signal.SIGTERM, _on_signal)
    signal.signal(signal.SIGINT, _on_signal)

    broker = RedisConnectionManager(settings)
    try:
        init_pool(settings)
        options = JobOptions.from_settings(settings)
        consumer = JobConsumer(broker.consumer_connection(), settings.queue_name, options)
        producer = JobQueue(broker.new_producer_connection(), settings.queue_name, options)
        sweep = OrphanRecoverySweep(DocumentsRepository(), producer)

        consumer.recover_stalled(startup=True)
        sweep.run()
        broker.on_reconnect(sweep.run)

        worker = Worker(consumer, JobRunner(build_processor(settings), consumer), settings)
    except Exception as exc:
        Log.exception(f"Worker startup failed: {exc}")
        _send(channel, StartupError(reason=str(exc)))
        broker.close()
        close_pool()
        sys.exit(1)

    listener = threading.Thread(
        target=_listen_for_shutdown, args=(channel, stop), name="ipc", daemon=True
    )
    listener.start()
    _send(channel, Ready())

    try:
        worker.run(stop_event=stop)
    finally:
        stop.set()
        broker.close()
        close_pool()
        _send(channel, ShutdownComplete())
        Log.info("Worker shutdown complete")
