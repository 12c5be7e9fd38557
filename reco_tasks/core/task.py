from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar, get_args, get_origin

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from reco_tasks.core.errors import SerializationError

ArgT = TypeVar('ArgT')
ReturnT = TypeVar('ReturnT')


@dataclass(slots=True, frozen=True)
class Signature(Generic[ArgT]):
    """One invocation: the argument value and the id assigned at submission."""

    arg: ArgT
    id: str


def _substitute(tp: Any, bindings: dict[Any, Any]) -> Any:
    if isinstance(tp, TypeVar):
        return bindings.get(tp, tp)
    params = getattr(tp, '__parameters__', ())
    if params and get_origin(tp) is not None:
        return tp[tuple(bindings.get(param, param) for param in params)]
    return tp


def _erase(tp: Any) -> Any:
    if isinstance(tp, TypeVar):
        return Any
    params = getattr(tp, '__parameters__', ())
    if params and get_origin(tp) is not None:
        return tp[tuple(Any for _ in params)]
    return tp


class Task(ABC, Generic[ArgT, ReturnT]):
    """Base class for task kinds.

    Subclasses declare their shapes through the generic parameters::

        class SummationTask(Task[list[int], int]):
            id = 'SummationTask'

            def run(self, arg: list[int]) -> int:
                return sum(arg)

    ``id`` defaults to the class name. ``argument_type`` and ``return_type`` may
    also be set explicitly; both must be understood by pydantic's TypeAdapter.
    """

    id: ClassVar[str]
    argument_type: ClassVar[Any] = Any
    return_type: ClassVar[Any] = Any

    _type_params: ClassVar[tuple[Any, Any]] = (ArgT, ReturnT)
    _argument_adapter: ClassVar[TypeAdapter[Any]]
    _return_adapter: ClassVar[TypeAdapter[Any]]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if 'id' not in cls.__dict__:
            cls.id = cls.__name__
        # Resolve through parameterized intermediate bases, e.g. Base[list[int]]
        # where Base(Task[A, int]) binds A.
        for base in cls.__dict__.get('__orig_bases__', ()):
            origin = get_origin(base)
            if not (isinstance(origin, type) and issubclass(origin, Task)):
                continue
            bindings = dict(zip(origin.__parameters__, get_args(base)))
            cls._type_params = tuple(_substitute(tp, bindings) for tp in origin._type_params)  # type: ignore[assignment]
            arg_type, return_type = cls._type_params
            if 'argument_type' not in cls.__dict__:
                cls.argument_type = _erase(arg_type)
            if 'return_type' not in cls.__dict__:
                cls.return_type = _erase(return_type)
            break
        cls._argument_adapter = TypeAdapter(cls.argument_type)
        cls._return_adapter = TypeAdapter(cls.return_type)

    def __init__(self, signature: Signature[ArgT]) -> None:
        self._signature = signature

    @classmethod
    def from_signature(cls, signature: Signature[ArgT]) -> 'Task[ArgT, ReturnT]':
        return cls(signature)

    @property
    def signature(self) -> Signature[ArgT]:
        return self._signature

    @abstractmethod
    def run(self, arg: ArgT) -> ReturnT:
        raise NotImplementedError

    @classmethod
    def serialize_signature(cls, signature: Signature[ArgT]) -> str:
        try:
            arg = cls._argument_adapter.dump_python(signature.arg, mode='json', warnings='error')
        except (PydanticSerializationError, TypeError, ValueError) as exc:
            raise SerializationError(f'{cls.id}: argument cannot be serialized: {exc}') from exc
        return json.dumps({'arg': arg, 'id': signature.id})

    @classmethod
    def deserialize_signature(cls, raw: str | bytes) -> Signature[ArgT]:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise SerializationError(f'{cls.id}: invalid signature payload: {exc}') from exc
        if not isinstance(data, dict) or 'arg' not in data or not isinstance(data.get('id'), str):
            raise SerializationError(f'{cls.id}: signature payload must be an object with "arg" and a string "id"')
        try:
            arg = cls._argument_adapter.validate_python(data['arg'])
        except ValidationError as exc:
            raise SerializationError(f'{cls.id}: argument does not match {cls.argument_type!r}: {exc}') from exc
        return Signature(arg=arg, id=data['id'])

    @classmethod
    def serialize_result(cls, value: ReturnT) -> str:
        try:
            return cls._return_adapter.dump_json(value, warnings='error').decode('utf-8')
        except (PydanticSerializationError, TypeError, ValueError) as exc:
            raise SerializationError(f'{cls.id}: result cannot be serialized: {exc}') from exc

    @classmethod
    def deserialize_result(cls, raw: str | bytes) -> ReturnT:
        try:
            return cls._return_adapter.validate_json(raw)
        except ValidationError as exc:
            raise SerializationError(f'{cls.id}: result does not match {cls.return_type!r}: {exc}') from exc
