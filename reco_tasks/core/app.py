from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, TypeVar

from loguru import logger

from reco_tasks.core.errors import RegistryFrozenError, UnregisteredTaskError
from reco_tasks.core.ids import new_invocation_id
from reco_tasks.core.messages import Command, Message, ResultMessage, WorkerInfo
from reco_tasks.core.runner import TaskRunnerBuilder, build_task_runner
from reco_tasks.core.task import ArgT, Signature, Task

if TYPE_CHECKING:
    from reco_tasks.distributed.broker import AbstractBroker

TaskT = TypeVar('TaskT', bound=type[Task[Any, Any]])


class App:
    """Task registry bound to one broker.

    Tasks are registered while the app is still mutable. ``freeze`` (called
    implicitly when a Worker is built on the app) turns the registry read-only
    so it can be shared across worker threads without locking.
    """

    def __init__(self, broker: AbstractBroker) -> None:
        self.broker = broker
        self._task_classes: dict[str, type[Task[Any, Any]]] = {}
        self._builders: dict[str, TaskRunnerBuilder] | Mapping[str, TaskRunnerBuilder] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def task_ids(self) -> tuple[str, ...]:
        return tuple(sorted(self._builders))

    def register_task(self, task_cls: TaskT) -> TaskT:
        if self._frozen:
            raise RegistryFrozenError(f'cannot register {task_cls.id!r}: app is frozen')
        current = self._task_classes.get(task_cls.id)
        if current is task_cls:
            return task_cls
        if current is not None:
            logger.bind(component='registry', task_id=task_cls.id).warning('Task identifier rebound to a new class')
        self._task_classes[task_cls.id] = task_cls
        self._builders[task_cls.id] = build_task_runner(task_cls)  # type: ignore[index]
        return task_cls

    def freeze(self) -> None:
        if self._frozen:
            return
        self._builders = MappingProxyType(dict(self._builders))
        self._frozen = True
        logger.bind(component='registry', tasks=list(self.task_ids)).debug('Task registry frozen')

    def is_registered(self, task_id: str) -> bool:
        return task_id in self._builders

    def submit(self, task_cls: type[Task[ArgT, Any]], arg: ArgT) -> str:
        if not self.is_registered(task_cls.id):
            raise UnregisteredTaskError(task_cls.id)
        signature = Signature(arg=arg, id=new_invocation_id())
        message = Message(task_id=task_cls.id, signature=task_cls.serialize_signature(signature))
        self.broker.push_message(message)
        logger.bind(component='registry', task_id=task_cls.id, signature_id=signature.id).debug('Task queued')
        return signature.id

    queue_task = submit

    def dispatch(self, message: Message) -> ResultMessage:
        builder = self._builders.get(message.task_id)
        if builder is None:
            raise UnregisteredTaskError(message.task_id)
        runner = builder(message.signature)
        return runner.run_task(self)

    def handle_message(self, raw_message: str | bytes) -> ResultMessage:
        return self.dispatch(Message.from_json(raw_message))

    def store_task_result(self, result: ResultMessage) -> None:
        self.broker.store_result(result)

    def get_result(self, signature_id: str) -> ResultMessage | None:
        return self.broker.get_result(signature_id)

    get_task_result = get_result

    def queue_command(self, command: Command, worker_id: str) -> None:
        self.broker.push_command(command, worker_id)

    def list_workers(self) -> list[WorkerInfo]:
        return self.broker.all_workers()

    def get_worker_info(self, worker_id: str) -> WorkerInfo | None:
        return self.broker.get_worker_info(worker_id)
