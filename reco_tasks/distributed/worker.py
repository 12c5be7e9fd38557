from __future__ import annotations

import threading
import time
from typing import Callable

from loguru import logger

from reco_tasks.core.app import App
from reco_tasks.core.ids import new_worker_id
from reco_tasks.core.messages import Command, Message, WorkerInfo, WorkerState

DEFAULT_POLL_INTERVAL_S = 0.5


class Worker:
    """Polls the shared task queue and its own command queue.

    Building a worker freezes the app, so every task must be registered first.
    A stop command is only seen between tasks: a task that is already running
    always completes.
    """

    def __init__(
        self,
        app: App,
        *,
        worker_id: str | None = None,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        app.freeze()
        self.app = app
        self.id = worker_id or new_worker_id()
        self.poll_interval_s = poll_interval_s
        self._sleep = sleep
        self._state = WorkerState.PENDING
        self._thread: threading.Thread | None = None
        self._error: Exception | None = None
        self._closed = False
        self._log = logger.bind(component='worker', worker_id=self.id)
        self._publish(WorkerState.PENDING)

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def error(self) -> Exception | None:
        return self._error

    def listen_for_messages(self) -> int:
        """Run the polling loop until a StopWorker command arrives.

        Returns the number of dispatched tasks. A dispatch error ends the loop
        and is re-raised. Stopped is terminal: a worker that has stopped or
        been closed cannot listen again.
        """
        if self._closed or self._state is WorkerState.STOPPED:
            raise RuntimeError(f'worker {self.id} is {"closed" if self._closed else "stopped"}')
        self._publish(WorkerState.RUNNING)
        self._log.info('Worker listening for messages')
        try:
            processed = self._poll()
        except BaseException:
            self._mark_stopped(after_error=True)
            raise
        self._mark_stopped(after_error=False)
        return processed

    def take_first_task_in_queue(self) -> bool:
        message = self.app.broker.pop_message()
        if message is None:
            return False
        self._dispatch(message)
        return True

    def start(self) -> threading.Thread:
        if self._thread is not None:
            raise RuntimeError(f'worker {self.id} already started')
        if self._closed or self._state is WorkerState.STOPPED:
            raise RuntimeError(f'worker {self.id} cannot be restarted')
        self._thread = threading.Thread(target=self._run_in_thread, name=f'reco-worker:{self.id}', daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> None:
        if self._thread is None:
            return
        self._thread.join(timeout)
        if self._error is not None:
            raise self._error

    def request_stop(self) -> None:
        self.app.queue_command(Command.STOP_WORKER, self.id)

    def close(self, timeout: float | None = None) -> None:
        """Stop a running loop thread, then remove this worker's presence entry.

        A task already running is waited for, up to ``timeout``. Failures are
        logged and never raised.
        """
        if self._closed:
            return
        self._closed = True
        thread = self._thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            try:
                self.request_stop()
            except Exception as exc:
                self._log.bind(error=repr(exc)).warning('Stop command not queued during teardown')
            thread.join(timeout)
            if thread.is_alive():
                self._log.bind(timeout=timeout).warning('Worker thread still running after teardown')
        try:
            self.app.broker.remove_worker_info(self.id)
        except Exception as exc:
            self._log.bind(error=repr(exc)).warning('Worker info removal failed during teardown')
        else:
            self._log.debug('Worker info removed')

    def __enter__(self) -> 'Worker':
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _poll(self) -> int:
        processed = 0
        while True:
            command = self.app.broker.pop_command(self.id)
            if command is Command.STOP_WORKER:
                self._log.bind(processed=processed).info('Stop command received')
                return processed

            message = self.app.broker.pop_message()
            if message is None:
                self._sleep(self.poll_interval_s)
                continue

            self._dispatch(message)
            processed += 1

    def _mark_stopped(self, *, after_error: bool) -> None:
        if self._closed:
            # teardown owns the presence entry from here on
            self._state = WorkerState.STOPPED
            return
        try:
            self._publish(WorkerState.STOPPED)
        except Exception as exc:
            self._state = WorkerState.STOPPED
            if not after_error:
                raise
            self._log.bind(error=repr(exc)).warning('Stopped state not published after loop failure')

    def _run_in_thread(self) -> None:
        try:
            self.listen_for_messages()
        except Exception as exc:
            self._error = exc
            self._log.exception('Worker loop terminated by error')

    def _dispatch(self, message: Message) -> None:
        started = time.monotonic()
        try:
            result = self.app.dispatch(message)
        except Exception:
            self._log.bind(task_id=message.task_id).error('Task dispatch failed')
            raise
        self._log.bind(
            task_id=message.task_id,
            signature_id=result.signature_id,
            elapsed_ms=round((time.monotonic() - started) * 1000, 3),
        ).info('Task completed')

    def _publish(self, state: WorkerState) -> None:
        self.app.broker.update_worker_info(WorkerInfo(id=self.id, state=state))
        self._state = state
