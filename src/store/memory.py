"""In-memory object store.

Used by the test-suite and by the CLI ``--state`` dry run. The store keeps a
log of every call so callers can assert exactly which reads and writes a
rollout cycle issued.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

import yaml

from .client import StoreError
from .objects import EtcdCluster, Lease, Pod, StatefulSet

WRITE_VERBS = ("delete", "evict")


@dataclass
class InMemoryObjectStore:
    etcds: Dict[Tuple[str, str], EtcdCluster] = field(default_factory=dict)
    statefulsets: Dict[Tuple[str, str], StatefulSet] = field(default_factory=dict)
    pods: Dict[Tuple[str, str], Pod] = field(default_factory=dict)
    leases: Dict[Tuple[str, str], Lease] = field(default_factory=dict)
    # Pods whose eviction the disruption budget rejects.
    blocked_evictions: Set[str] = field(default_factory=set)
    # (verb, object name) -> error raised instead of performing the call.
    failures: Dict[Tuple[str, str], StoreError] = field(default_factory=dict)
    # Keep deleted/evicted pods listed, as they would be while terminating.
    retain_deleted: bool = False
    calls: List[Tuple[str, str]] = field(default_factory=list)

    def add_etcd(self, etcd: EtcdCluster) -> None:
        self.etcds[(etcd.namespace, etcd.name)] = etcd

    def add_statefulset(self, sts: StatefulSet) -> None:
        self.statefulsets[(sts.namespace, sts.name)] = sts

    def add_pod(self, pod: Pod) -> None:
        self.pods[(pod.namespace, pod.name)] = pod

    def add_lease(self, lease: Lease) -> None:
        self.leases[(lease.namespace, lease.name)] = lease

    def fail(self, verb: str, name: str, error: Optional[StoreError] = None) -> None:
        self.failures[(verb, name)] = error or StoreError(f"injected {verb} failure for {name}")

    @property
    def writes(self) -> List[Tuple[str, str]]:
        return [call for call in self.calls if call[0] in WRITE_VERBS]

    def get_etcd(self, namespace: str, name: str, *, timeout: float) -> EtcdCluster:
        return self._get("get_etcd", self.etcds, namespace, name)

    def get_statefulset(self, namespace: str, name: str, *, timeout: float) -> StatefulSet:
        return self._get("get_statefulset", self.statefulsets, namespace, name)

    def get_lease(self, namespace: str, name: str, *, timeout: float) -> Lease:
        return self._get("get_lease", self.leases, namespace, name)

    def list_pods(self, namespace: str, selector: Dict[str, str], *, timeout: float) -> List[Pod]:
        self._record("list_pods", namespace)
        return [
            pod
            for (pod_ns, _), pod in self.pods.items()
            if pod_ns == namespace and all(pod.labels.get(k) == v for k, v in selector.items())
        ]

    def delete_pod(self, namespace: str, name: str, *, timeout: float) -> None:
        self._record("delete", name)
        self._remove_pod(namespace, name)

    def evict_pod(self, namespace: str, name: str, *, timeout: float) -> None:
        self._record("evict", name)
        if name in self.blocked_evictions:
            raise StoreError(
                "Cannot evict pod as it would violate the pod's disruption budget.",
                reason="TooManyRequests",
            )
        self._remove_pod(namespace, name)

    def _record(self, verb: str, name: str) -> None:
        self.calls.append((verb, name))
        error = self.failures.get((verb, name))
        if error is not None:
            raise error

    def _get(self, verb: str, table: Mapping[Tuple[str, str], Any], namespace: str, name: str) -> Any:
        self._record(verb, name)
        try:
            return table[(namespace, name)]
        except KeyError:
            raise StoreError(f"{namespace}/{name} not found", reason="NotFound") from None

    def _remove_pod(self, namespace: str, name: str) -> None:
        if (namespace, name) not in self.pods:
            raise StoreError(f'pods "{name}" not found', reason="NotFound")
        if not self.retain_deleted:
            del self.pods[(namespace, name)]

    @classmethod
    def from_state(cls, data: Mapping[str, Any]) -> "InMemoryObjectStore":
        """Build a store from a mapping of Kubernetes documents.

        Recognised keys: ``etcd`` (one document), ``statefulset`` (one
        document), ``pods`` and ``leases`` (lists of documents) and
        ``blockedEvictions`` (pod names).
        """

        store = cls()
        if data.get("etcd"):
            store.add_etcd(EtcdCluster.from_dict(data["etcd"]))
        if data.get("statefulset"):
            store.add_statefulset(StatefulSet.from_dict(data["statefulset"]))
        for doc in _documents(data, "pods"):
            store.add_pod(Pod.from_dict(doc))
        for doc in _documents(data, "leases"):
            store.add_lease(Lease.from_dict(doc))
        store.blocked_evictions = {str(name) for name in _documents(data, "blockedEvictions")}
        return store

    @classmethod
    def from_file(cls, path: Path) -> "InMemoryObjectStore":
        text = path.read_text(encoding="utf-8")
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            try:
                data = yaml.safe_load(text) or {}
            except yaml.YAMLError as exc:
                raise ValueError(f"{path} is not valid YAML: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping")
        return cls.from_state(data)


def _documents(data: Mapping[str, Any], key: str) -> List[Any]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list")
    return value


__all__ = ["InMemoryObjectStore", "WRITE_VERBS"]
