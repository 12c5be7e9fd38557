from datetime import datetime, timezone
from typing import Any, TypeVar

import pytest

from reco_tasks.core import ids
from reco_tasks.core.errors import SerializationError
from reco_tasks.core.ids import new_invocation_id
from reco_tasks.core.task import Signature, Task

A = TypeVar('A')


class SummationTask(Task[list[int], int]):
    id = 'SummationTask'

    def run(self, arg: list[int]) -> int:
        return sum(arg)


class StampTask(Task[dict[str, datetime], list[str]]):
    def run(self, arg: dict[str, datetime]) -> list[str]:
        return sorted(arg)


class CountingTask(Task[A, int]):
    def run(self, arg: A) -> int:
        return len(repr(arg))


class IntListTask(CountingTask[list[int]]):
    pass


class PairTask(CountingTask[tuple[A, str]]):
    pass


class IntPairTask(PairTask[int]):
    pass


def test_generic_parameters_bind_argument_and_return_types():
    assert SummationTask.argument_type == list[int]
    assert SummationTask.return_type is int
    assert StampTask.id == 'StampTask'


def test_signature_round_trip_is_lossless():
    signature = Signature(arg=[1, 2, 3], id=new_invocation_id())

    restored = SummationTask.deserialize_signature(SummationTask.serialize_signature(signature))

    assert restored == signature


def test_signature_round_trip_with_structured_argument():
    stamp = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    signature = Signature(arg={'opened': stamp}, id='abc')

    restored = StampTask.deserialize_signature(StampTask.serialize_signature(signature))

    assert restored == signature
    assert restored.arg['opened'] == stamp


def test_result_round_trip():
    raw = SummationTask.serialize_result(6)

    assert raw == '6'
    assert SummationTask.deserialize_result(raw) == 6


def test_argument_shape_mismatch_raises_serialization_error():
    with pytest.raises(SerializationError, match='SummationTask'):
        SummationTask.deserialize_signature('{"arg": "not-a-list", "id": "x"}')


@pytest.mark.parametrize('payload', ['', '[]', '{"arg": [1]}', '{"id": "x"}', '{"arg": [1], "id": 5}'])
def test_malformed_signature_payload_is_rejected(payload):
    with pytest.raises(SerializationError):
        SummationTask.deserialize_signature(payload)


def test_unserializable_result_is_rejected():
    with pytest.raises(SerializationError, match='result cannot be serialized'):
        SummationTask.serialize_result(object())


def test_task_owns_its_signature():
    signature = Signature(arg=[4, 5], id='sig-1')

    task = SummationTask.from_signature(signature)

    assert task.signature is signature
    assert task.run(task.signature.arg) == 9


def test_invocation_ids_are_unique_and_time_sortable():
    ids = [new_invocation_id() for _ in range(500)]

    assert len(set(ids)) == len(ids)
    assert ids == sorted(ids)
    assert all(len(value) == 32 for value in ids)


def test_types_resolve_through_generic_intermediate_base():
    assert CountingTask.argument_type is Any
    assert CountingTask.return_type is int
    assert IntListTask.argument_type == list[int]
    assert IntListTask.return_type is int
    assert IntPairTask.argument_type == tuple[int, str]


def test_intermediate_base_subclass_rejects_mismatched_argument():
    with pytest.raises(SerializationError, match='IntListTask'):
        IntListTask.deserialize_signature('{"arg": {"not": "a list"}, "id": "x"}')

    restored = IntListTask.deserialize_signature('{"arg": [1, 2], "id": "x"}')
    assert restored.arg == [1, 2]


def test_invocation_ids_stay_ordered_when_clock_steps_back(monkeypatch):
    readings = iter([5_000_000_000_000_000, 4_000_000_000_000_000, 4_000_000_000_000_000])
    monkeypatch.setattr(ids, '_last_ms', 0)
    monkeypatch.setattr(ids, '_last_random', 0)
    monkeypatch.setattr(ids.time, 'time_ns', lambda: next(readings))

    first = ids.new_invocation_id()
    second = ids.new_invocation_id()
    monkeypatch.setattr(ids, '_last_random', ids._RANDOM_MAX)
    third = ids.new_invocation_id()

    assert first < second < third
    assert third[:12] == f'{5_000_000_001:012x}'
