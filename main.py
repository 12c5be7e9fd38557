from __future__ import annotations

import argparse
import os

from loguru import logger

from reco_tasks.config.logging_config import configure_logging
from reco_tasks.config.settings import Settings
from reco_tasks.core.app import App
from reco_tasks.core.task import Task
from reco_tasks.distributed import ClusterController, Worker, create_broker


class HelloWorldTask(Task[None, int]):
    id = 'HelloWorldTask'

    def run(self, arg: None) -> int:
        logger.bind(signature_id=self.signature.id).info('Hello, World!')
        return 42


class SummationTask(Task[list[int], int]):
    id = 'SummationTask'

    def run(self, arg: list[int]) -> int:
        return sum(arg)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Reco Tasks - queue a task and run it on a worker thread')
    parser.add_argument('--backend', choices=['memory', 'redis'], default=None)
    parser.add_argument('--redis-url', default=None)
    parser.add_argument('--timeout', type=float, default=30.0)
    parser.add_argument('numbers', nargs='*', type=int)
    return parser.parse_args()


def build_app(settings: Settings) -> App:
    app = App(create_broker(settings))
    app.register_task(HelloWorldTask)
    app.register_task(SummationTask)
    return app


def run_demo(settings: Settings, numbers: list[int], *, timeout_s: float) -> int:
    app = build_app(settings)
    controller = ClusterController(app, poll_interval_s=settings.result_poll_interval_seconds)

    try:
        with Worker(app, poll_interval_s=settings.worker_poll_interval_seconds) as worker:
            worker.start()
            logger.bind(worker_id=worker.id).info('Worker thread started')

            if numbers:
                signature_id = app.submit(SummationTask, numbers)
                result = controller.wait_for_result(signature_id, timeout_s=timeout_s)
                value = SummationTask.deserialize_result(result.result)
            else:
                signature_id = app.submit(HelloWorldTask, None)
                result = controller.wait_for_result(signature_id, timeout_s=timeout_s)
                value = HelloWorldTask.deserialize_result(result.result)
            logger.bind(signature_id=signature_id, result=value).info('Task result received')

            controller.stop_all_workers()
            worker.join(timeout_s)
    finally:
        app.broker.close()
    return value


if __name__ == '__main__':
    args = _parse_args()
    if args.backend:
        os.environ['RECO_TASKS_BROKER_BACKEND'] = args.backend
    if args.redis_url:
        os.environ['RECO_TASKS_REDIS_URL'] = args.redis_url
    settings = Settings()
    configure_logging(settings.log_level, json_output=settings.log_json)
    print(run_demo(settings, args.numbers, timeout_s=args.timeout))
