"""Label, annotation and container names shared across components."""

from __future__ import annotations

from typing import Dict

NAME_LABEL = "app.kubernetes.io/name"
REVISION_HASH_LABEL = "controller-revision-hash"

SUSPEND_RECONCILE_ANNOTATION = "druid.gardener.cloud/suspend-etcd-spec-reconcile"

PRIMARY_CONTAINER = "etcd"


def member_selector(cluster_name: str) -> Dict[str, str]:
    """Label selector matching every member pod of ``cluster_name``."""

    return {NAME_LABEL: cluster_name}


def format_selector(selector: Dict[str, str]) -> str:
    return ",".join(f"{key}={value}" for key, value in sorted(selector.items()))


__all__ = [
    "NAME_LABEL",
    "PRIMARY_CONTAINER",
    "REVISION_HASH_LABEL",
    "SUSPEND_RECONCILE_ANNOTATION",
    "format_selector",
    "member_selector",
]
