import multiprocessing
import threading
import time
from collections.abc import Callable
from multiprocessing.connection import Connection, wait
from multiprocessing.process import BaseProcess

from app.config.settings import Settings
from app.logging.logger import Log
from app.supervisor.messages import (
    Message,
    Ready,
    Shutdown,
    ShutdownComplete,
    StartupError,
    from_wire,
    to_wire,
)

WorkerTarget = Callable[[Connection, Settings], None]


class Supervisor:
    """Runs exactly one worker process and keeps it alive.

    The worker is respawned after ``respawn_delay_seconds`` whenever it exits
    outside a deliberate shutdown.
    """

    def __init__(
        self,
        settings: Settings,
        target: WorkerTarget,
        context: multiprocessing.context.BaseContext | None = None,
    ) -> None:
        self._settings = settings
        self._target = target
        self._ctx = context or multiprocessing.get_context("spawn")
        self._process: BaseProcess | None = None
        self._channel: Connection | None = None
        self._shutting_down = threading.Event()
        self._shutdown_complete = threading.Event()
        self._ready = threading.Event()
        self._stopped = False
        self.respawns = 0

    @property
    def process(self) -> BaseProcess | None:
        return self._process

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down.is_set()

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        return self._ready.wait(timeout)

    def start(self) -> None:
        parent_end, child_end = self._ctx.Pipe(duplex=True)
        process = self._ctx.Process(
            target=self._target,
            args=(child_end, self._settings),
            name="docprep-worker",
        )
        process.start()
        child_end.close()
        self._process = process
        self._channel = parent_end
        self._ready.clear()
        self._shutdown_complete.clear()
        Log.info(f"Forked worker process {process.pid}")

    def monitor(self) -> None:
        """Block until shutdown, respawning the worker when it dies."""
        while not self._shutting_down.is_set():
            process, channel = self._process, self._channel
            if process is None or channel is None:
                return
            for ready in wait([process.sentinel, channel], timeout=1.0):
                if ready is channel:
                    self._drain_channel(channel)
            if process.is_alive() or self._shutting_down.is_set():
                continue
            self._drain_channel(channel)
            Log.error(f"Worker {process.pid} exited with code {process.exitcode}")
            self._close_channel()
            time.sleep(self._settings.respawn_delay_seconds)
            if self._shutting_down.is_set():
                return
            self.respawns += 1
            Log.info("Respawning worker")
            self.start()

    def request_shutdown(self) -> None:
        """Stop monitoring. Safe to call from a signal handler."""
        self._shutting_down.set()

    def shutdown(self) -> None:
        """Ask the worker to stop, wait for it, and kill it if it overstays."""
        self._shutting_down.set()
        if self._stopped:
            return
        self._stopped = True
        process, channel = self._process, self._channel
        if process is None or not process.is_alive():
            self._close_channel()
            return

        Log.info(f"Sending shutdown to worker {process.pid}")
        if channel is not None:
            try:
                channel.send(to_wire(Shutdown()))
            except (BrokenPipeError, EOFError, OSError) as exc:
                Log.warning(f"Could not reach worker: {exc}")

        deadline = time.monotonic() + self._settings.shutdown_timeout_seconds
        while process.is_alive() and time.monotonic() < deadline:
            if channel is not None and not channel.closed:
                ready = wait([process.sentinel, channel], timeout=0.5)
                if channel in ready:
                    self._drain_channel(channel)
            else:
                process.join(timeout=0.5)

        if process.is_alive():
            Log.error(
                f"Worker did not stop within {self._settings.shutdown_timeout_seconds}s, killing"
            )
            process.kill()
        process.join()
        if self._shutdown_complete.is_set():
            Log.info("Worker shut down cleanly")
        self._close_channel()

    def _drain_channel(self, channel: Connection) -> None:
        try:
            while not channel.closed and channel.poll():
                self._handle(from_wire(channel.recv()))
        except (EOFError, OSError):
            return
        except ValueError as exc:
            Log.warning(str(exc))

    def _handle(self, message: Message) -> None:
        if isinstance(message, Ready):
            self._ready.set()
            Log.info("Worker ready")
        elif isinstance(message, ShutdownComplete):
            self._shutdown_complete.set()
            Log.info("Worker reported shutdown complete")
        elif isinstance(message, StartupError):
            Log.error(f"Worker failed to start: {message.reason}")

    def _close_channel(self) -> None:
        if self._channel is not None:
            self._channel.close()
            self._channel = None
