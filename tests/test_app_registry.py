import json

import pytest

from reco_tasks.core.app import App
from reco_tasks.core.errors import RegistryFrozenError, SerializationError, UnregisteredTaskError
from reco_tasks.core.messages import Command, Message, WorkerInfo, WorkerState
from reco_tasks.core.task import Task
from reco_tasks.distributed.broker import InMemoryBroker


class SummationTask(Task[list[int], int]):
    id = 'SummationTask'

    def run(self, arg: list[int]) -> int:
        return sum(arg)


class RecordingTask(Task[str, str]):
    id = 'RecordingTask'
    calls: list[str] = []

    def run(self, arg: str) -> str:
        RecordingTask.calls.append(arg)
        return arg.upper()


class ExplodingTask(Task[int, int]):
    id = 'ExplodingTask'

    def run(self, arg: int) -> int:
        raise RuntimeError(f'boom {arg}')


class CountingBroker(InMemoryBroker):
    def __init__(self):
        super().__init__()
        self.pushed = 0

    def push_message(self, message):
        self.pushed += 1
        super().push_message(message)


def test_end_to_end_summation_stores_result():
    broker = InMemoryBroker()
    app = App(broker)
    app.register_task(SummationTask)

    signature_id = app.submit(SummationTask, [1, 2, 3])
    message = broker.pop_message()
    app.dispatch(message)

    result = app.get_result(signature_id)
    assert result is not None
    assert result.signature_id == signature_id
    assert SummationTask.deserialize_result(result.result) == 6


def test_submitted_message_wire_format():
    broker = InMemoryBroker()
    app = App(broker)
    app.register_task(SummationTask)

    signature_id = app.submit(SummationTask, [7])
    message = broker.pop_message()

    assert message.task_id == 'SummationTask'
    assert json.loads(message.signature) == {'arg': [7], 'id': signature_id}


def test_register_task_is_idempotent():
    app = App(InMemoryBroker())

    assert app.register_task(SummationTask) is SummationTask
    app.register_task(SummationTask)

    assert app.task_ids == ('SummationTask',)
    signature_id = app.submit(SummationTask, [2, 2])
    app.dispatch(app.broker.pop_message())
    assert SummationTask.deserialize_result(app.get_result(signature_id).result) == 4


def test_register_task_works_as_decorator():
    app = App(InMemoryBroker())

    @app.register_task
    class EchoTask(Task[str, str]):
        def run(self, arg: str) -> str:
            return arg

    assert app.is_registered('EchoTask')


def test_reregistering_identifier_shadows_previous_class():
    app = App(InMemoryBroker())

    class ShadowSummation(Task[list[int], int]):
        id = 'SummationTask'

        def run(self, arg: list[int]) -> int:
            return -sum(arg)

    app.register_task(SummationTask)
    app.register_task(ShadowSummation)
    signature_id = app.submit(SummationTask, [1, 2])
    app.dispatch(app.broker.pop_message())

    assert app.get_result(signature_id).result == '-3'


def test_submit_unregistered_task_fails_without_broker_write():
    broker = CountingBroker()
    app = App(broker)

    with pytest.raises(UnregisteredTaskError, match='SummationTask') as exc_info:
        app.submit(SummationTask, [1])

    assert exc_info.value.task_id == 'SummationTask'
    assert broker.pushed == 0
    assert broker.pop_message() is None


def test_submit_with_unserializable_argument_fails_without_broker_write():
    broker = CountingBroker()
    app = App(broker)
    app.register_task(SummationTask)

    with pytest.raises(SerializationError):
        app.submit(SummationTask, object())

    assert broker.pushed == 0


def test_dispatch_unknown_task_never_runs_anything():
    RecordingTask.calls.clear()
    broker = InMemoryBroker()
    app = App(broker)
    app.register_task(RecordingTask)

    with pytest.raises(UnregisteredTaskError, match='GhostTask'):
        app.dispatch(Message(task_id='GhostTask', signature='{"arg": "x", "id": "s1"}'))

    assert RecordingTask.calls == []
    assert app.get_result('s1') is None


def test_dispatch_with_mismatched_signature_raises_and_stores_nothing():
    app = App(InMemoryBroker())
    app.register_task(SummationTask)

    with pytest.raises(SerializationError):
        app.dispatch(Message(task_id='SummationTask', signature='{"arg": {"a": 1}, "id": "s2"}'))

    assert app.get_result('s2') is None


def test_failed_run_stores_no_result():
    app = App(InMemoryBroker())
    app.register_task(ExplodingTask)
    signature_id = app.submit(ExplodingTask, 3)

    with pytest.raises(RuntimeError, match='boom 3'):
        app.dispatch(app.broker.pop_message())

    assert app.get_result(signature_id) is None


def test_handle_message_decodes_wire_payload():
    app = App(InMemoryBroker())
    app.register_task(RecordingTask)
    raw = Message(task_id='RecordingTask', signature='{"arg": "hi", "id": "s3"}').to_json()

    result = app.handle_message(raw)

    assert result.result == '"HI"'
    assert app.get_result('s3') == result


def test_handle_message_rejects_malformed_payload():
    app = App(InMemoryBroker())

    with pytest.raises(SerializationError):
        app.handle_message('{"task_id": 1}')


def test_frozen_app_rejects_registration():
    app = App(InMemoryBroker())
    app.register_task(SummationTask)
    app.freeze()
    app.freeze()

    assert app.frozen
    with pytest.raises(RegistryFrozenError):
        app.register_task(RecordingTask)
    assert app.is_registered('SummationTask')


def test_administrative_delegates_reach_broker():
    broker = InMemoryBroker()
    app = App(broker)
    broker.update_worker_info(WorkerInfo(id='w1', state=WorkerState.RUNNING))

    app.queue_command(Command.STOP_WORKER, 'w1')

    assert broker.pop_command('w1') is Command.STOP_WORKER
    assert app.list_workers() == [WorkerInfo(id='w1', state=WorkerState.RUNNING)]
    assert app.get_worker_info('w1').state is WorkerState.RUNNING
    assert app.get_worker_info('missing') is None
