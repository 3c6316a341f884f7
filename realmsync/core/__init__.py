"""Core realm and federation logic, independent of the HTTP layer.

Module Structure:
    - models.py     : Dataclass data model
    - store.py      : Persistence protocol + in-memory store
    - events.py     : Ordered observer callbacks
    - registry.py   : Default resources and their dependencies
    - providers.py  : Provider type registry
    - realm.py      : Realm and client operations
    - roles.py      : Roles and composite-role graph
    - bootstrap.py  : Default resource bootstrap
    - federation/   : Differ, fetcher, federation service, synchronizer
    - scheduler.py  : Cluster locks and the cluster-aware scheduler
    - manager.py    : RealmManager entry points
"""
from .bootstrap import BootstrapReport, RealmBootstrapper
from .events import ChangeEvent, EventBus
from .manager import RealmManager
from .scheduler import (
    ClusterAwareScheduler,
    ClusterAwareTaskRunner,
    InMemoryClusterLock,
    RedisClusterLock,
)
from .store import InMemoryStore, Store

__all__ = [
    "BootstrapReport",
    "ChangeEvent",
    "ClusterAwareScheduler",
    "ClusterAwareTaskRunner",
    "EventBus",
    "InMemoryClusterLock",
    "InMemoryStore",
    "RealmBootstrapper",
    "RealmManager",
    "RedisClusterLock",
    "Store",
]
