import multiprocessing
import signal
import threading
from collections.abc import Iterator
from contextlib import ExitStack
from dataclasses import dataclass
from multiprocessing.connection import Connection
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from app.supervisor.messages import Shutdown, to_wire
from app.worker.entry import run_worker_process


class _RecordingChannel:
    """Child end of a real pipe that also records what the worker sends."""

    def __init__(self, conn: Connection, events: list[str]) -> None:
        self._conn = conn
        self._events = events

    def send(self, payload: dict[str, Any]) -> None:
        self._events.append(f"sent:{payload['type']}")
        self._conn.send(payload)

    def poll(self, timeout: float | None = None) -> bool:
        return self._conn.poll(timeout)

    def recv(self) -> Any:
        return self._conn.recv()


@dataclass
class _Entry:
    parent: Connection
    channel: _RecordingChannel
    events: list[str]
    settings: MagicMock
    init_pool: MagicMock
    close_pool: MagicMock
    broker: MagicMock
    consumer: MagicMock
    sweep: MagicMock
    worker: MagicMock
    signal_signal: MagicMock

    def received(self) -> list[str]:
        types = []
        while self.parent.poll(0.1):
            types.append(self.parent.recv()["type"])
        return types

    def handler_for(self, signum: int) -> Any:
        for call in self.signal_signal.call_args_list:
            if call.args[0] == signum:
                return call.args[1]
        raise AssertionError(f"no handler for {signum}")


@pytest.fixture
def entry() -> Iterator[_Entry]:
    parent, child = multiprocessing.Pipe()
    events: list[str] = []
    with ExitStack() as stack:

        def _patch(target: str) -> MagicMock:
            return stack.enter_context(patch(f"app.worker.entry.{target}"))

        _patch("Log")
        init_pool = _patch("init_pool")
        close_pool = _patch("close_pool")
        broker_cls = _patch("RedisConnectionManager")
        consumer_cls = _patch("JobConsumer")
        _patch("JobQueue")
        _patch("DocumentsRepository")
        sweep_cls = _patch("OrphanRecoverySweep")
        _patch("build_processor")
        _patch("JobRunner")
        worker_cls = _patch("Worker")
        signal_signal = _patch("signal.signal")

        broker = broker_cls.return_value
        consumer = consumer_cls.return_value
        sweep = sweep_cls.return_value
        consumer.recover_stalled.side_effect = lambda **_: events.append("recover_stalled")
        sweep.run.side_effect = lambda: events.append("sweep")
        broker.close.side_effect = lambda: events.append("broker_closed")
        close_pool.side_effect = lambda: events.append("pool_closed")

        yield _Entry(
            parent=parent,
            channel=_RecordingChannel(child, events),
            events=events,
            settings=MagicMock(log_level="INFO", queue_name="document-preprocess"),
            init_pool=init_pool,
            close_pool=close_pool,
            broker=broker,
            consumer=consumer,
            sweep=sweep,
            worker=worker_cls.return_value,
            signal_signal=signal_signal,
        )
    parent.close()
    child.close()


def _run_until_stopped(events: list[str]) -> Any:
    def _run(stop_event: threading.Event) -> None:
        events.append("running")
        assert stop_event.wait(5)
        events.append("drained")

    return _run


class TestWorkerStartup:
    def test_recovers_stalled_jobs_and_sweeps_before_ready(self, entry: _Entry) -> None:
        entry.worker.run.side_effect = _run_until_stopped(entry.events)
        entry.parent.send(to_wire(Shutdown()))

        run_worker_process(entry.channel, entry.settings)  # type: ignore[arg-type]

        assert entry.events[:4] == ["recover_stalled", "sweep", "sent:ready", "running"]
        entry.consumer.recover_stalled.assert_called_once_with(startup=True)
        entry.init_pool.assert_called_once_with(entry.settings)

    def test_registers_sweep_as_reconnect_callback(self, entry: _Entry) -> None:
        entry.worker.run.side_effect = _run_until_stopped(entry.events)
        entry.parent.send(to_wire(Shutdown()))

        run_worker_process(entry.channel, entry.settings)  # type: ignore[arg-type]

        entry.broker.on_reconnect.assert_called_once_with(entry.sweep.run)

    def test_startup_failure_reports_error_and_exits_1(self, entry: _Entry) -> None:
        entry.init_pool.side_effect = ConnectionError("database unreachable")

        with pytest.raises(SystemExit) as exc_info:
            run_worker_process(entry.channel, entry.settings)  # type: ignore[arg-type]

        assert exc_info.value.code == 1
        message = entry.parent.recv()
        assert message == {"type": "startup-error", "reason": "database unreachable"}
        assert entry.events == ["sent:startup-error", "broker_closed", "pool_closed"]
        entry.worker.run.assert_not_called()


class TestWorkerShutdown:
    def test_shutdown_message_drains_then_closes_broker_then_pool(
        self, entry: _Entry
    ) -> None:
        entry.worker.run.side_effect = _run_until_stopped(entry.events)
        entry.parent.send(to_wire(Shutdown()))

        run_worker_process(entry.channel, entry.settings)  # type: ignore[arg-type]

        assert entry.events[3:] == [
            "running",
            "drained",
            "broker_closed",
            "pool_closed",
            "sent:shutdown-complete",
        ]
        assert entry.received() == ["ready", "shutdown-complete"]

    def test_sigterm_stops_the_worker(self, entry: _Entry) -> None:
        def _run(stop_event: threading.Event) -> None:
            entry.handler_for(signal.SIGTERM)(signal.SIGTERM, None)
            assert stop_event.is_set()

        entry.worker.run.side_effect = _run

        run_worker_process(entry.channel, entry.settings)  # type: ignore[arg-type]

        assert entry.events[-3:] == ["broker_closed", "pool_closed", "sent:shutdown-complete"]

    def test_lost_primary_stops_the_worker(self, entry: _Entry) -> None:
        entry.worker.run.side_effect = _run_until_stopped(entry.events)
        entry.parent.close()

        run_worker_process(entry.channel, entry.settings)  # type: ignore[arg-type]

        assert "drained" in entry.events
        entry.close_pool.assert_called_once_with()
