"""Typed read-only views over the Kubernetes objects the rollout consumes.

Each view keeps only the fields the rollout needs and is built from the JSON
document returned by the API server (``kubectl get ... -o json``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{what} must be a mapping, got {type(value).__name__}")
    return value


def _int(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{what} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{what} must be an integer, got {value!r}") from None


def _metadata(doc: Any) -> Mapping[str, Any]:
    if not isinstance(doc, Mapping):
        raise ValueError(f"object must be a mapping, got {type(doc).__name__}")
    metadata = doc.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        raise ValueError("metadata must be a mapping")
    if not metadata.get("name"):
        raise ValueError("object is missing metadata.name")
    return metadata


def _str_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): str(v) for k, v in value.items()}


@dataclass(frozen=True)
class ContainerState:
    name: str
    ready: bool


@dataclass(frozen=True)
class Pod:
    namespace: str
    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    containers: Tuple[ContainerState, ...] = ()

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Pod":
        metadata = _metadata(doc)
        status = _mapping(doc.get("status"), "status")
        statuses = status.get("containerStatuses") or []
        if not isinstance(statuses, list):
            raise ValueError("status.containerStatuses must be a list")
        containers = tuple(
            ContainerState(name=str(entry.get("name")), ready=bool(entry.get("ready", False)))
            for entry in statuses
            if isinstance(entry, Mapping)
        )
        return cls(
            namespace=str(metadata.get("namespace", "default")),
            name=str(metadata["name"]),
            labels=_str_map(metadata.get("labels")),
            containers=containers,
        )

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def label(self, name: str) -> Optional[str]:
        return self.labels.get(name)

    def container(self, name: str) -> Optional[ContainerState]:
        for state in self.containers:
            if state.name == name:
                return state
        return None


@dataclass(frozen=True)
class StatefulSet:
    namespace: str
    name: str
    update_revision: str
    current_revision: Optional[str] = None
    replicas: Optional[int] = None

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "StatefulSet":
        metadata = _metadata(doc)
        spec = _mapping(doc.get("spec"), "spec")
        status = _mapping(doc.get("status"), "status")
        replicas = spec.get("replicas")
        return cls(
            namespace=str(metadata.get("namespace", "default")),
            name=str(metadata["name"]),
            update_revision=str(status.get("updateRevision") or ""),
            current_revision=status.get("currentRevision"),
            replicas=_int(replicas, "spec.replicas") if replicas is not None else None,
        )


@dataclass(frozen=True)
class Lease:
    namespace: str
    name: str
    holder_identity: Optional[str] = None

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Lease":
        metadata = _metadata(doc)
        spec = _mapping(doc.get("spec"), "spec")
        holder = spec.get("holderIdentity")
        return cls(
            namespace=str(metadata.get("namespace", "default")),
            name=str(metadata["name"]),
            holder_identity=str(holder) if holder is not None else None,
        )


@dataclass(frozen=True)
class EtcdCluster:
    namespace: str
    name: str
    replicas: int
    annotations: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "EtcdCluster":
        metadata = _metadata(doc)
        spec = _mapping(doc.get("spec"), "spec")
        return cls(
            namespace=str(metadata.get("namespace", "default")),
            name=str(metadata["name"]),
            replicas=_int(spec.get("replicas", 0), "spec.replicas"),
            annotations=_str_map(metadata.get("annotations")),
        )

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


__all__ = ["ContainerState", "EtcdCluster", "Lease", "Pod", "StatefulSet"]
