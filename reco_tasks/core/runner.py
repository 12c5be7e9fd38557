from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Generic

from reco_tasks.core.messages import ResultMessage
from reco_tasks.core.task import ArgT, ReturnT, Task

if TYPE_CHECKING:
    from reco_tasks.core.app import App


class TaskRunner(Generic[ArgT, ReturnT]):
    """Executes one reconstructed task instance and stores its result."""

    def __init__(self, task: Task[ArgT, ReturnT]) -> None:
        self.task = task

    def run_task(self, app: 'App') -> ResultMessage:
        task_cls = type(self.task)
        signature = self.task.signature
        value = self.task.run(signature.arg)
        result_message = ResultMessage(
            signature_id=signature.id,
            result=task_cls.serialize_result(value),
        )
        app.store_task_result(result_message)
        return result_message


TaskRunnerBuilder = Callable[[str], TaskRunner[Any, Any]]


def build_task_runner(task_cls: type[Task[Any, Any]]) -> TaskRunnerBuilder:
    """Bind ``task_cls`` into a builder that turns a serialized signature into a runner."""

    def _build(serialized_signature: str) -> TaskRunner[Any, Any]:
        signature = task_cls.deserialize_signature(serialized_signature)
        return TaskRunner(task_cls.from_signature(signature))

    _build.__qualname__ = f'build_task_runner[{task_cls.id}]'
    return _build
