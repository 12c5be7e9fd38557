from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from contextlib import contextmanager
from typing import Any, Iterator

import redis
from loguru import logger

from reco_tasks.config.settings import Settings
from reco_tasks.core.errors import BrokerConnectionError, BrokerError
from reco_tasks.core.messages import Command, Message, ResultMessage, WorkerInfo


class AbstractBroker(ABC):
    """Queue, command, result and worker-presence storage used by App and Worker.

    Every read is non-blocking: an empty queue or a missing key returns ``None``
    instead of waiting. Implementations own their synchronization.
    """

    @abstractmethod
    def push_message(self, message: Message) -> None:
        raise NotImplementedError

    @abstractmethod
    def pop_message(self) -> Message | None:
        raise NotImplementedError

    @abstractmethod
    def push_command(self, command: Command, worker_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def pop_command(self, worker_id: str) -> Command | None:
        raise NotImplementedError

    @abstractmethod
    def store_result(self, result_message: ResultMessage) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_result(self, signature_id: str) -> ResultMessage | None:
        raise NotImplementedError

    @abstractmethod
    def update_worker_info(self, info: WorkerInfo) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_worker_info(self, worker_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_worker_info(self, worker_id: str) -> WorkerInfo | None:
        raise NotImplementedError

    @abstractmethod
    def all_workers(self) -> list[WorkerInfo]:
        raise NotImplementedError

    def close(self) -> None:
        return None


class InMemoryBroker(AbstractBroker):
    def __init__(self, *, lock_timeout_s: float = 5.0) -> None:
        self.lock_timeout_s = lock_timeout_s
        self._lock = threading.Lock()
        self._queue: deque[Message] = deque()
        self._command_queues: dict[str, deque[Command]] = {}
        self._results: dict[str, ResultMessage] = {}
        self._workers: dict[str, WorkerInfo] = {}

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.lock_timeout_s):
            raise BrokerError(f'in-memory broker lock not acquired within {self.lock_timeout_s}s')
        try:
            yield
        finally:
            self._lock.release()

    def push_message(self, message: Message) -> None:
        with self._locked():
            self._queue.append(message)

    def pop_message(self) -> Message | None:
        with self._locked():
            return self._queue.popleft() if self._queue else None

    def push_command(self, command: Command, worker_id: str) -> None:
        with self._locked():
            self._command_queues.setdefault(worker_id, deque()).append(command)

    def pop_command(self, worker_id: str) -> Command | None:
        with self._locked():
            commands = self._command_queues.get(worker_id)
            return commands.popleft() if commands else None

    def store_result(self, result_message: ResultMessage) -> None:
        with self._locked():
            self._results[result_message.signature_id] = result_message

    def get_result(self, signature_id: str) -> ResultMessage | None:
        with self._locked():
            return self._results.get(signature_id)

    def update_worker_info(self, info: WorkerInfo) -> None:
        with self._locked():
            self._workers[info.id] = info

    def remove_worker_info(self, worker_id: str) -> None:
        with self._locked():
            self._workers.pop(worker_id, None)

    def get_worker_info(self, worker_id: str) -> WorkerInfo | None:
        with self._locked():
            return self._workers.get(worker_id)

    def all_workers(self) -> list[WorkerInfo]:
        with self._locked():
            return list(self._workers.values())


class RedisBroker(AbstractBroker):
    """Broker over plain Redis lists and hashes.

    Tasks are RPUSHed and LPOPed from ``<prefix>:queue``; commands live in one
    list per worker. Results and worker info are JSON values in two hashes.
    """

    def __init__(self, settings: Settings, *, client: Any | None = None) -> None:
        self.settings = settings
        self.key_prefix = settings.broker_key_prefix
        if client is None:
            client = redis.Redis.from_url(
                settings.redis_url,
                socket_timeout=settings.broker_operation_timeout_seconds,
                socket_connect_timeout=settings.broker_operation_timeout_seconds,
                decode_responses=True,
            )
        self._redis = client
        try:
            self._redis.ping()
        except redis.RedisError as exc:
            raise BrokerConnectionError(f'redis unreachable at {settings.redis_url}: {exc}') from exc
        logger.bind(component='broker', backend='redis', prefix=self.key_prefix).info('Redis broker connected')

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except redis.ConnectionError as exc:
            raise BrokerConnectionError(f'redis {operation} failed: {exc}') from exc
        except redis.RedisError as exc:
            raise BrokerError(f'redis {operation} failed: {exc}') from exc

    def push_message(self, message: Message) -> None:
        with self._guard('push_message'):
            self._redis.rpush(self._queue_key(), message.to_json())

    def pop_message(self) -> Message | None:
        with self._guard('pop_message'):
            raw = self._redis.lpop(self._queue_key())
        return None if raw is None else Message.from_json(raw)

    def push_command(self, command: Command, worker_id: str) -> None:
        with self._guard('push_command'):
            self._redis.rpush(self._command_key(worker_id), command.to_json())

    def pop_command(self, worker_id: str) -> Command | None:
        with self._guard('pop_command'):
            raw = self._redis.lpop(self._command_key(worker_id))
        return None if raw is None else Command.from_json(raw)

    def store_result(self, result_message: ResultMessage) -> None:
        with self._guard('store_result'):
            self._redis.hset(self._results_key(), result_message.signature_id, result_message.to_json())

    def get_result(self, signature_id: str) -> ResultMessage | None:
        with self._guard('get_result'):
            raw = self._redis.hget(self._results_key(), signature_id)
        return None if raw is None else ResultMessage.from_json(raw)

    def update_worker_info(self, info: WorkerInfo) -> None:
        with self._guard('update_worker_info'):
            self._redis.hset(self._workers_key(), info.id, info.to_json())

    def remove_worker_info(self, worker_id: str) -> None:
        with self._guard('remove_worker_info'):
            self._redis.hdel(self._workers_key(), worker_id)

    def get_worker_info(self, worker_id: str) -> WorkerInfo | None:
        with self._guard('get_worker_info'):
            raw = self._redis.hget(self._workers_key(), worker_id)
        return None if raw is None else WorkerInfo.from_json(raw)

    def all_workers(self) -> list[WorkerInfo]:
        with self._guard('all_workers'):
            entries = self._redis.hgetall(self._workers_key())
        return [WorkerInfo.from_json(raw) for raw in entries.values()]

    def close(self) -> None:
        self._redis.close()

    def _queue_key(self) -> str:
        return f'{self.key_prefix}:queue'

    def _command_key(self, worker_id: str) -> str:
        return f'{self.key_prefix}:commands:{worker_id}'

    def _results_key(self) -> str:
        return f'{self.key_prefix}:results'

    def _workers_key(self) -> str:
        return f'{self.key_prefix}:workers'


def create_broker(settings: Settings) -> AbstractBroker:
    if settings.broker_backend == 'memory':
        return InMemoryBroker(lock_timeout_s=settings.broker_lock_timeout_seconds)
    if settings.broker_backend == 'redis':
        return RedisBroker(settings)
    raise ValueError(f'unsupported broker backend: {settings.broker_backend}')
