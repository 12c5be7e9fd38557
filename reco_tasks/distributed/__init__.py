from reco_tasks.distributed.broker import AbstractBroker, InMemoryBroker, RedisBroker, create_broker
from reco_tasks.distributed.coordinator import ClusterController
from reco_tasks.distributed.worker import Worker

__all__ = [
    'AbstractBroker',
    'ClusterController',
    'InMemoryBroker',
    'RedisBroker',
    'Worker',
    'create_broker',
]
