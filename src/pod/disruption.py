"""Disrupt the selected member: evict it, or force-delete it when allowed.

The fallback policy is a table over the eviction outcome and the cluster-wide
health of the primary containers:

=========  ======================  ==============
evicted    primaries all ready     decision
=========  ======================  ==============
yes        not checked             EVICTED
no         yes                     FORCE_DELETE
no         no                      FAIL
=========  ======================  ==============

A failed eviction while every primary container is ready means the
disruption budget is held back by a sidecar, so the member is deleted
directly. Otherwise the eviction failure is reported as fatal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from src.common.errors import ERR_DELETE_POD, ERR_EVICT_POD, DruidError, wrap_error
from src.common.labels import PRIMARY_CONTAINER
from src.common.operator import OperatorContext
from src.store.client import ObjectStore, StoreError
from src.store.objects import EtcdCluster

from .health import are_all_primary_containers_ready
from .selection import ScoredCandidate

logger = logging.getLogger(__name__)


class DisruptionDecision(Enum):
    EVICTED = "evicted"
    FORCE_DELETE = "force-delete"
    FAIL = "fail"


DECISION_TABLE: Dict[Tuple[bool, Optional[bool]], DisruptionDecision] = {
    (True, None): DisruptionDecision.EVICTED,
    (False, True): DisruptionDecision.FORCE_DELETE,
    (False, False): DisruptionDecision.FAIL,
}


def decide(evicted: bool, primaries_ready: Optional[bool]) -> DisruptionDecision:
    key = (evicted, None if evicted else primaries_ready)
    try:
        return DECISION_TABLE[key]
    except KeyError:
        raise ValueError(f"no disruption decision for evicted={evicted}, primaries_ready={primaries_ready}") from None


@dataclass(frozen=True)
class DisruptionOutcome:
    decision: DisruptionDecision
    pod_name: str
    message: str


def disrupt(
    store: ObjectStore,
    ctx: OperatorContext,
    etcd: EtcdCluster,
    candidate: ScoredCandidate,
    container: str = PRIMARY_CONTAINER,
) -> DisruptionOutcome:
    """Issue the single disruptive action of this cycle.

    Returns the outcome for the two successful paths; raises
    :class:`DruidError` with ``ERR_EVICT_POD`` or ``ERR_DELETE_POD`` for the
    fatal ones. An error from the readiness re-check propagates unchanged.
    """

    pod = candidate.pod
    eviction_error: Optional[StoreError] = None
    try:
        store.evict_pod(pod.namespace, pod.name, timeout=ctx.remaining("Evict"))
    except StoreError as exc:
        eviction_error = exc
        logger.info("[%s] eviction of %s rejected: %s", etcd.key, pod.name, exc)

    primaries_ready: Optional[bool] = None
    if eviction_error is not None:
        primaries_ready = are_all_primary_containers_ready(store, ctx, etcd, container)

    decision = decide(eviction_error is None, primaries_ready)
    if decision is DisruptionDecision.EVICTED:
        logger.info("[%s] evicted %s (%s)", etcd.key, pod.name, candidate.role.label)
        return DisruptionOutcome(decision, pod.name, f"Pod {pod.name} is evicted")

    if decision is DisruptionDecision.FORCE_DELETE:
        try:
            store.delete_pod(pod.namespace, pod.name, timeout=ctx.remaining("Delete"))
        except StoreError as exc:
            raise wrap_error(exc, ERR_DELETE_POD, "Delete", f"Error force deleting pod: {pod.key}") from exc
        logger.info("[%s] force deleted %s, eviction blocked by a sidecar", etcd.key, pod.name)
        return DisruptionOutcome(
            decision,
            pod.name,
            f"Pod {pod.name} is force deleted as the disruption budget is blocking the eviction "
            f"while every {container} container is ready",
        )

    raise DruidError(
        ERR_EVICT_POD,
        "Evict",
        f"Error evicting pod: {pod.key}",
        eviction_error,
    ) from eviction_error


__all__ = ["DECISION_TABLE", "DisruptionDecision", "DisruptionOutcome", "decide", "disrupt"]
