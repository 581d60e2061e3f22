from __future__ import annotations

from typing import Dict, List, Optional, Protocol

from .objects import EtcdCluster, Lease, Pod, StatefulSet


class StoreError(Exception):
    """Raised when the object store rejects or fails a request.

    ``reason`` carries the API server reason when one could be determined
    (``NotFound``, ``Conflict``, ``TooManyRequests``, ...).
    """

    def __init__(self, message: str, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason

    @property
    def not_found(self) -> bool:
        return self.reason == "NotFound"

    @property
    def conflict(self) -> bool:
        return self.reason == "Conflict"

    @property
    def too_many_requests(self) -> bool:
        # A PodDisruptionBudget rejection of an eviction is reported as 429.
        return self.reason == "TooManyRequests"


class ObjectStore(Protocol):
    """Namespace-scoped access to the objects the rollout reads and writes."""

    def get_etcd(self, namespace: str, name: str, *, timeout: float) -> EtcdCluster:
        ...

    def get_statefulset(self, namespace: str, name: str, *, timeout: float) -> StatefulSet:
        ...

    def list_pods(self, namespace: str, selector: Dict[str, str], *, timeout: float) -> List[Pod]:
        ...

    def get_lease(self, namespace: str, name: str, *, timeout: float) -> Lease:
        ...

    def delete_pod(self, namespace: str, name: str, *, timeout: float) -> None:
        ...

    def evict_pod(self, namespace: str, name: str, *, timeout: float) -> None:
        ...


__all__ = ["ObjectStore", "StoreError"]
