from __future__ import annotations

import time
from collections import Counter
from typing import Callable

from loguru import logger

from reco_tasks.core.app import App
from reco_tasks.core.errors import ResultTimeoutError
from reco_tasks.core.messages import Command, ResultMessage, WorkerState


class ClusterController:
    """Operator-side helpers built on the App's administrative delegates."""

    def __init__(
        self,
        app: App,
        *,
        poll_interval_s: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.app = app
        self.poll_interval_s = poll_interval_s
        self._sleep = sleep
        self._clock = clock

    def wait_for_result(self, signature_id: str, *, timeout_s: float | None = None) -> ResultMessage:
        deadline = None if timeout_s is None else self._clock() + timeout_s
        while True:
            result = self.app.get_result(signature_id)
            if result is not None:
                return result
            if deadline is not None and self._clock() >= deadline:
                raise ResultTimeoutError(signature_id, timeout_s or 0.0)
            self._sleep(self.poll_interval_s)

    def stop_all_workers(self) -> list[str]:
        stopped: list[str] = []
        for info in self.app.list_workers():
            if info.state is WorkerState.STOPPED:
                continue
            self.app.queue_command(Command.STOP_WORKER, info.id)
            stopped.append(info.id)
        logger.bind(component='controller', workers=stopped).info('Stop command queued for workers')
        return stopped

    def worker_states(self) -> dict[WorkerState, int]:
        counts = Counter(info.state for info in self.app.list_workers())
        return {state: counts.get(state, 0) for state in WorkerState}
