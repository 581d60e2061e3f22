"""Rolling member replacement for StatefulSets using the ``OnDelete`` strategy.

Every reconcile runs :meth:`PodOperator.sync`, which moves the cluster at most
one member closer to the StatefulSet's update revision:

1. members already at the update revision are left alone; when all of them
   are, the cycle is a no-op;
2. outdated members whose primary container is not ready are deleted
   outright, bypassing disruption budgets;
3. if any updated (or just deleted) member is not ready, the cycle requeues;
4. otherwise the least critical healthy outdated member (learner, then
   follower, then leader) is evicted, with a force-delete fallback described
   in :mod:`src.pod.disruption`.

A StatefulSet that reports no update revision yet leaves every member alone.

No state survives between cycles; each one is derived from the live objects.
"""

from __future__ import annotations

import logging
from typing import List

from src.common.errors import (
    ERR_DELETE_POD,
    ERR_GET_STATEFULSET,
    ERR_LIST_PODS,
    RequeueAfter,
    wrap_error,
)
from src.common.labels import PRIMARY_CONTAINER, member_selector
from src.common.operator import OperatorContext
from src.store.client import ObjectStore, StoreError
from src.store.objects import EtcdCluster, Pod

from .disruption import disrupt
from .health import is_primary_container_ready
from .revision import MemberState, RevisionPartition, classify_members
from .selection import select_candidate

logger = logging.getLogger(__name__)


class PodOperator:
    def __init__(self, store: ObjectStore, primary_container: str = PRIMARY_CONTAINER) -> None:
        self.store = store
        self.primary_container = primary_container

    def get_existing_resource_names(self, ctx: OperatorContext, etcd: EtcdCluster) -> List[str]:
        return []

    def pre_sync(self, ctx: OperatorContext, etcd: EtcdCluster) -> None:
        return None

    def trigger_delete(self, ctx: OperatorContext, etcd: EtcdCluster) -> None:
        # Member pods are owned by the StatefulSet and deleted with it.
        return None

    def sync(self, ctx: OperatorContext, etcd: EtcdCluster) -> None:
        logger.info("[%s] running pod sync (run %s)", etcd.key, ctx.run_id)
        revision = self._update_revision(ctx, etcd)
        if not revision:
            logger.warning("[%s] StatefulSet has no update revision yet, skipping pod sync", etcd.key)
            return None
        partition = classify_members(self._list_members(ctx, etcd), revision)
        logger.info(
            "[%s] revision %s: %d updated, %d outdated, %d desired",
            etcd.key,
            revision,
            len(partition.updated),
            len(partition.outdated),
            etcd.replicas,
        )
        if partition.is_converged(etcd.replicas):
            return None

        healthy_outdated = self._purge_unhealthy(ctx, etcd, partition)
        self._gate_on_updated(etcd, partition)

        candidate = select_candidate(self.store, ctx, healthy_outdated)
        if candidate is None:
            logger.info("[%s] no outdated member left to disrupt", etcd.key)
            return None
        logger.info(
            "[%s] selected %s (%s) for disruption",
            etcd.key,
            candidate.pod.name,
            candidate.role.label,
        )
        outcome = disrupt(self.store, ctx, etcd, candidate, self.primary_container)
        raise RequeueAfter(outcome.message)

    def _update_revision(self, ctx: OperatorContext, etcd: EtcdCluster) -> str:
        try:
            sts = self.store.get_statefulset(etcd.namespace, etcd.name, timeout=ctx.remaining("Get"))
        except StoreError as exc:
            raise wrap_error(
                exc,
                ERR_GET_STATEFULSET,
                "Get",
                f"Error getting StatefulSet {etcd.key} for etcd: {etcd.key}",
            ) from exc
        return sts.update_revision

    def _list_members(self, ctx: OperatorContext, etcd: EtcdCluster) -> List[Pod]:
        try:
            return self.store.list_pods(
                etcd.namespace,
                member_selector(etcd.name),
                timeout=ctx.remaining("List"),
            )
        except StoreError as exc:
            raise wrap_error(exc, ERR_LIST_PODS, "List", f"Error listing pods for etcd: {etcd.key}") from exc

    def _purge_unhealthy(
        self,
        ctx: OperatorContext,
        etcd: EtcdCluster,
        partition: RevisionPartition,
    ) -> List[Pod]:
        """Delete unready outdated members and return the healthy outdated ones.

        Deleted members move to the updated bucket flagged as pending removal.
        """

        healthy: List[Pod] = []
        for member in partition.outdated:
            if is_primary_container_ready(member.pod, self.primary_container):
                healthy.append(member.pod)
                continue
            pod = member.pod
            try:
                self.store.delete_pod(pod.namespace, pod.name, timeout=ctx.remaining("Delete"))
            except StoreError as exc:
                raise wrap_error(
                    exc,
                    ERR_DELETE_POD,
                    "Delete",
                    f"unable to delete unhealthy pod {pod.key}",
                ) from exc
            logger.info("[%s] deleted unhealthy outdated member %s", etcd.key, pod.name)
            partition.updated.append(MemberState(pod, pending_removal=True))
        return healthy

    def _gate_on_updated(self, etcd: EtcdCluster, partition: RevisionPartition) -> None:
        waiting = [
            member.name
            for member in partition.updated
            if member.pending_removal or not is_primary_container_ready(member.pod, self.primary_container)
        ]
        if waiting:
            reason = f"waiting for the updated pods {waiting} to become healthy"
            logger.info("[%s] %s", etcd.key, reason)
            raise RequeueAfter(reason)


__all__ = ["PodOperator"]
