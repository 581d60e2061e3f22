from __future__ import annotations

import logging

from src.common.errors import ERR_LIST_PODS, wrap_error
from src.common.labels import PRIMARY_CONTAINER, member_selector
from src.common.operator import OperatorContext
from src.store.client import ObjectStore, StoreError
from src.store.objects import EtcdCluster, Pod

logger = logging.getLogger(__name__)


def is_primary_container_ready(pod: Pod, container: str = PRIMARY_CONTAINER) -> bool:
    """True when ``container`` reports ready; a missing container counts as not ready."""

    state = pod.container(container)
    return state is not None and state.ready


def are_all_primary_containers_ready(
    store: ObjectStore,
    ctx: OperatorContext,
    etcd: EtcdCluster,
    container: str = PRIMARY_CONTAINER,
) -> bool:
    """Re-list every member and check only the primary container of each.

    Sidecar containers are not considered.
    """

    try:
        pods = store.list_pods(
            etcd.namespace,
            member_selector(etcd.name),
            timeout=ctx.remaining("List"),
        )
    except StoreError as exc:
        raise wrap_error(exc, ERR_LIST_PODS, "List", f"Error listing pods: {etcd.key}") from exc
    unready = [pod.name for pod in pods if not is_primary_container_ready(pod, container)]
    if unready:
        logger.info("[%s] %s container not ready in %s", etcd.key, container, ", ".join(unready))
        return False
    return True


__all__ = ["are_all_primary_containers_ready", "is_primary_container_ready"]
