"""Object-store access for the rollout: protocol, kubectl and in-memory stores."""

from .client import ObjectStore, StoreError
from .kubectl import KubectlObjectStore
from .memory import InMemoryObjectStore
from .objects import ContainerState, EtcdCluster, Lease, Pod, StatefulSet

__all__ = [
    "ContainerState",
    "EtcdCluster",
    "InMemoryObjectStore",
    "KubectlObjectStore",
    "Lease",
    "ObjectStore",
    "Pod",
    "StatefulSet",
    "StoreError",
]
