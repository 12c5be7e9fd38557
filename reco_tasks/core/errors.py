from __future__ import annotations


class RecoTasksError(Exception):
    """Base class for every error raised by reco_tasks."""


class BrokerError(RecoTasksError):
    pass


class BrokerConnectionError(BrokerError, ConnectionError):
    pass


class SerializationError(RecoTasksError, ValueError):
    pass


class UnregisteredTaskError(RecoTasksError, LookupError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f'task {task_id!r} is not registered')
        self.task_id = task_id


class RegistryFrozenError(RecoTasksError, RuntimeError):
    pass


class ResultTimeoutError(RecoTasksError, TimeoutError):
    def __init__(self, signature_id: str, timeout_s: float) -> None:
        super().__init__(f'no result for {signature_id!r} after {timeout_s:.2f}s')
        self.signature_id = signature_id
        self.timeout_s = timeout_s
