from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from reco_tasks.core.errors import SerializationError


def _load_object(raw: str | bytes, kind: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f'invalid {kind} payload: {exc}') from exc
    if not isinstance(data, dict):
        raise SerializationError(f'invalid {kind} payload: expected an object, got {type(data).__name__}')
    return data


def _require_str(data: dict[str, Any], key: str, kind: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise SerializationError(f'invalid {kind} payload: field {key!r} must be a string')
    return value


@dataclass(slots=True, frozen=True)
class Message:
    """Queued form of one invocation. The signature stays serialized until dispatch."""

    task_id: str
    signature: str

    def to_dict(self) -> dict[str, Any]:
        return {'task_id': self.task_id, 'signature': self.signature}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Message':
        return cls(
            task_id=_require_str(data, 'task_id', 'message'),
            signature=_require_str(data, 'signature', 'message'),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> 'Message':
        return cls.from_dict(_load_object(raw, 'message'))


@dataclass(slots=True, frozen=True)
class ResultMessage:
    signature_id: str
    result: str

    def to_dict(self) -> dict[str, Any]:
        return {'signature_id': self.signature_id, 'result': self.result}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'ResultMessage':
        return cls(
            signature_id=_require_str(data, 'signature_id', 'result'),
            result=_require_str(data, 'result', 'result'),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> 'ResultMessage':
        return cls.from_dict(_load_object(raw, 'result'))


class Command(str, Enum):
    STOP_WORKER = 'StopWorker'

    def to_json(self) -> str:
        return json.dumps(self.value)

    @classmethod
    def from_json(cls, raw: str | bytes) -> 'Command':
        try:
            return cls(json.loads(raw))
        except (TypeError, ValueError) as exc:
            raise SerializationError(f'invalid command payload: {raw!r}') from exc


class WorkerState(str, Enum):
    PENDING = 'Pending'
    RUNNING = 'Running'
    STOPPED = 'Stopped'


@dataclass(slots=True, frozen=True)
class WorkerInfo:
    id: str
    state: WorkerState

    def to_dict(self) -> dict[str, Any]:
        return {'id': self.id, 'state': self.state.value}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'WorkerInfo':
        raw_state = _require_str(data, 'state', 'worker info')
        try:
            state = WorkerState(raw_state)
        except ValueError as exc:
            raise SerializationError(f'invalid worker info payload: unknown state {raw_state!r}') from exc
        return cls(id=_require_str(data, 'id', 'worker info'), state=state)

    @classmethod
    def from_json(cls, raw: str | bytes) -> 'WorkerInfo':
        return cls.from_dict(_load_object(raw, 'worker info'))
