import unittest
from typing import Dict, Optional, Sequence

from src.common.errors import (
    ERR_DELETE_POD,
    ERR_EVICT_POD,
    ERR_GET_LEASE,
    ERR_GET_STATEFULSET,
    ERR_LIST_PODS,
    DeadlineExceeded,
    DruidError,
    RequeueAfter,
)
from src.common.operator import OperatorContext
from src.pod.operator import PodOperator
from src.store.client import StoreError
from src.store.memory import InMemoryObjectStore
from src.store.objects import ContainerState, EtcdCluster, Lease, Pod, StatefulSet

NAMESPACE = "shoot--dev"
CLUSTER = "etcd-main"
NEW_REV = "etcd-main-7d9f"
OLD_REV = "etcd-main-5c4b"


def make_pod(
    index: int,
    revision: str,
    *,
    etcd_ready: bool = True,
    sidecar_ready: bool = True,
    containers: Optional[Sequence[ContainerState]] = None,
) -> Pod:
    if containers is None:
        containers = (
            ContainerState("etcd", etcd_ready),
            ContainerState("backup-restore", sidecar_ready),
        )
    return Pod(
        namespace=NAMESPACE,
        name=f"{CLUSTER}-{index}",
        labels={"app.kubernetes.io/name": CLUSTER, "controller-revision-hash": revision},
        containers=tuple(containers),
    )


def make_store(pods: Sequence[Pod], roles: Optional[Dict[str, Optional[str]]] = None, replicas: int = 3):
    store = InMemoryObjectStore()
    etcd = EtcdCluster(namespace=NAMESPACE, name=CLUSTER, replicas=replicas)
    store.add_etcd(etcd)
    store.add_statefulset(StatefulSet(namespace=NAMESPACE, name=CLUSTER, update_revision=NEW_REV))
    for pod in pods:
        store.add_pod(pod)
    for pod_name, role in (roles or {}).items():
        identity = None if role is None else f"8e3f1c2a:{role}"
        store.add_lease(Lease(namespace=NAMESPACE, name=pod_name, holder_identity=identity))
    return store, etcd


class PodOperatorSyncTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = OperatorContext()

    def test_converged_cluster_is_a_no_op(self) -> None:
        store, etcd = make_store([make_pod(i, NEW_REV) for i in range(3)])
        self.assertIsNone(PodOperator(store).sync(self.ctx, etcd))
        self.assertEqual(store.writes, [])
        self.assertNotIn("get_lease", [verb for verb, _ in store.calls])

    def test_unhealthy_outdated_member_is_deleted_then_requeued(self) -> None:
        pods = [
            make_pod(0, NEW_REV),
            make_pod(1, NEW_REV),
            make_pod(2, OLD_REV, etcd_ready=False),
        ]
        store, etcd = make_store(pods, {f"{CLUSTER}-2": "Member"})
        with self.assertRaises(RequeueAfter) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("delete", f"{CLUSTER}-2")])
        self.assertIn(f"{CLUSTER}-2", ctx.exception.reason)
        self.assertNotIn("get_lease", [verb for verb, _ in store.calls])

    def test_purge_never_continues_to_eviction_in_same_cycle(self) -> None:
        pods = [
            make_pod(0, NEW_REV),
            make_pod(1, OLD_REV, etcd_ready=False),
            make_pod(2, OLD_REV),
        ]
        store, etcd = make_store(pods, {f"{CLUSTER}-2": "Learner"})
        with self.assertRaises(RequeueAfter):
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("delete", f"{CLUSTER}-1")])

    def test_unhealthy_updated_member_blocks_disruption(self) -> None:
        pods = [
            make_pod(0, NEW_REV, etcd_ready=False),
            make_pod(1, OLD_REV),
            make_pod(2, OLD_REV),
        ]
        store, etcd = make_store(pods, {f"{CLUSTER}-1": "Learner", f"{CLUSTER}-2": "Leader"})
        with self.assertRaises(RequeueAfter) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(store.writes, [])
        self.assertIn(f"{CLUSTER}-0", ctx.exception.reason)

    def test_sidecar_readiness_does_not_block_the_gate(self) -> None:
        pods = [
            make_pod(0, NEW_REV, sidecar_ready=False),
            make_pod(1, OLD_REV),
            make_pod(2, OLD_REV),
        ]
        store, etcd = make_store(pods, {f"{CLUSTER}-1": "Member", f"{CLUSTER}-2": "Leader"})
        with self.assertRaises(RequeueAfter):
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-1")])

    def test_learner_is_evicted_first(self) -> None:
        pods = [make_pod(0, OLD_REV), make_pod(1, OLD_REV), make_pod(2, OLD_REV)]
        roles = {f"{CLUSTER}-0": "Leader", f"{CLUSTER}-1": "Member", f"{CLUSTER}-2": "Learner"}
        store, etcd = make_store(pods, roles)
        with self.assertRaises(RequeueAfter) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-2")])
        self.assertEqual(ctx.exception.reason, f"Pod {CLUSTER}-2 is evicted")

    def test_follower_is_preferred_over_leader(self) -> None:
        pods = [make_pod(0, OLD_REV), make_pod(1, OLD_REV), make_pod(2, NEW_REV)]
        roles = {f"{CLUSTER}-0": "Leader", f"{CLUSTER}-1": "Member"}
        store, etcd = make_store(pods, roles)
        with self.assertRaises(RequeueAfter):
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-1")])

    def test_leader_is_evicted_only_when_last(self) -> None:
        pods = [make_pod(0, OLD_REV), make_pod(1, NEW_REV), make_pod(2, NEW_REV)]
        store, etcd = make_store(pods, {f"{CLUSTER}-0": "Leader"})
        with self.assertRaises(RequeueAfter):
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-0")])

    def test_ties_keep_first_member_seen(self) -> None:
        pods = [make_pod(0, OLD_REV), make_pod(1, OLD_REV), make_pod(2, NEW_REV)]
        roles = {f"{CLUSTER}-0": "Member", f"{CLUSTER}-1": "Member"}
        store, etcd = make_store(pods, roles)
        with self.assertRaises(RequeueAfter):
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-0")])

    def test_malformed_and_missing_identities_score_unknown(self) -> None:
        pods = [make_pod(0, OLD_REV), make_pod(1, OLD_REV), make_pod(2, OLD_REV)]
        store, etcd = make_store(pods, {f"{CLUSTER}-0": "Learner", f"{CLUSTER}-2": None})
        store.add_lease(Lease(namespace=NAMESPACE, name=f"{CLUSTER}-1", holder_identity="no-separator"))
        with self.assertRaises(RequeueAfter):
            PodOperator(store).sync(self.ctx, etcd)
        # Unknown scores 0 and therefore sorts ahead of a learner.
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-1")])

    def test_no_outdated_healthy_members_ends_quietly(self) -> None:
        # One replica short but nothing outdated: the StatefulSet controller
        # still has to create the missing member.
        store, etcd = make_store([make_pod(0, NEW_REV), make_pod(1, NEW_REV)])
        self.assertIsNone(PodOperator(store).sync(self.ctx, etcd))
        self.assertEqual(store.writes, [])

    def test_resync_on_unchanged_state_repeats_the_decision(self) -> None:
        pods = [make_pod(0, NEW_REV), make_pod(1, OLD_REV), make_pod(2, OLD_REV)]
        roles = {f"{CLUSTER}-1": "Leader", f"{CLUSTER}-2": "Learner"}
        store, etcd = make_store(pods, roles)
        store.retain_deleted = True
        operator = PodOperator(store)
        for _ in range(2):
            with self.assertRaises(RequeueAfter):
                operator.sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-2"), ("evict", f"{CLUSTER}-2")])

    def test_primary_container_name_is_configurable(self) -> None:
        pods = [
            make_pod(0, NEW_REV, containers=[ContainerState("etcd-wrapper", True)]),
            make_pod(1, OLD_REV, containers=[ContainerState("etcd-wrapper", True)]),
            make_pod(2, NEW_REV, containers=[ContainerState("etcd-wrapper", True)]),
        ]
        store, etcd = make_store(pods, {f"{CLUSTER}-1": "Member"})
        with self.assertRaises(RequeueAfter):
            PodOperator(store, primary_container="etcd-wrapper").sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-1")])


class EvictionFallbackTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = OperatorContext()

    def test_blocked_eviction_force_deletes_when_primaries_are_ready(self) -> None:
        pods = [
            make_pod(0, NEW_REV, sidecar_ready=False),
            make_pod(1, OLD_REV),
            make_pod(2, NEW_REV),
        ]
        store, etcd = make_store(pods, {f"{CLUSTER}-1": "Member"})
        store.blocked_evictions.add(f"{CLUSTER}-1")
        with self.assertRaises(RequeueAfter) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-1"), ("delete", f"{CLUSTER}-1")])
        self.assertIn("force deleted", ctx.exception.reason)

    def test_blocked_eviction_is_fatal_when_a_primary_is_not_ready(self) -> None:
        pods = [make_pod(0, NEW_REV), make_pod(1, OLD_REV), make_pod(2, NEW_REV)]
        store, etcd = make_store(pods, {f"{CLUSTER}-1": "Member"})
        store.blocked_evictions.add(f"{CLUSTER}-1")
        # A member outside the revision-classified set turns unready between
        # the first listing and the re-check.
        original_list = store.list_pods
        listings = []

        def list_pods(namespace, selector, *, timeout):
            listings.append(namespace)
            pods = original_list(namespace, selector, timeout=timeout)
            if len(listings) == 1:
                return pods
            return [make_pod(3, NEW_REV, etcd_ready=False)] + pods

        store.list_pods = list_pods
        with self.assertRaises(DruidError) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(ctx.exception.code, ERR_EVICT_POD)
        self.assertNotIsInstance(ctx.exception, RequeueAfter)
        self.assertIsInstance(ctx.exception.cause, StoreError)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-1")])

    def test_force_delete_failure_is_fatal(self) -> None:
        pods = [make_pod(0, NEW_REV), make_pod(1, OLD_REV), make_pod(2, NEW_REV)]
        store, etcd = make_store(pods, {f"{CLUSTER}-1": "Member"})
        store.blocked_evictions.add(f"{CLUSTER}-1")
        store.fail("delete", f"{CLUSTER}-1", StoreError("conflict", reason="Conflict"))
        with self.assertRaises(DruidError) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(ctx.exception.code, ERR_DELETE_POD)

    def test_readiness_recheck_error_propagates(self) -> None:
        pods = [make_pod(0, NEW_REV), make_pod(1, OLD_REV), make_pod(2, NEW_REV)]
        store, etcd = make_store(pods, {f"{CLUSTER}-1": "Member"})
        store.blocked_evictions.add(f"{CLUSTER}-1")
        original_list = store.list_pods
        listings = []

        def list_pods(namespace, selector, *, timeout):
            listings.append(namespace)
            if len(listings) > 1:
                raise StoreError("connection refused")
            return original_list(namespace, selector, timeout=timeout)

        store.list_pods = list_pods
        with self.assertRaises(DruidError) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(ctx.exception.code, ERR_LIST_PODS)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-1")])


class PodOperatorErrorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = OperatorContext()

    def test_missing_statefulset_is_fatal(self) -> None:
        store, etcd = make_store([make_pod(0, OLD_REV)])
        store.statefulsets.clear()
        with self.assertRaises(DruidError) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(ctx.exception.code, ERR_GET_STATEFULSET)
        self.assertIn(etcd.key, str(ctx.exception))

    def test_list_failure_is_fatal(self) -> None:
        store, etcd = make_store([make_pod(0, OLD_REV)])
        store.fail("list_pods", NAMESPACE)
        with self.assertRaises(DruidError) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(ctx.exception.code, ERR_LIST_PODS)

    def test_purge_delete_failure_aborts_cycle(self) -> None:
        pods = [make_pod(0, OLD_REV, etcd_ready=False), make_pod(1, OLD_REV, etcd_ready=False)]
        store, etcd = make_store(pods)
        store.fail("delete", f"{CLUSTER}-0")
        with self.assertRaises(DruidError) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(ctx.exception.code, ERR_DELETE_POD)
        self.assertEqual(store.writes, [("delete", f"{CLUSTER}-0")])

    def test_missing_lease_is_fatal(self) -> None:
        pods = [make_pod(0, NEW_REV), make_pod(1, OLD_REV), make_pod(2, OLD_REV)]
        store, etcd = make_store(pods, {f"{CLUSTER}-1": "Learner"})
        with self.assertRaises(DruidError) as ctx:
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(ctx.exception.code, ERR_GET_LEASE)
        self.assertEqual(store.writes, [])

    def test_expired_deadline_issues_no_calls(self) -> None:
        store, etcd = make_store([make_pod(0, OLD_REV)])
        ctx = OperatorContext(deadline=10.0, clock=lambda: 11.0)
        with self.assertRaises(DeadlineExceeded):
            PodOperator(store).sync(ctx, etcd)
        self.assertEqual(store.calls, [])

    def test_deadline_during_selection_stops_before_eviction(self) -> None:
        pods = [make_pod(0, NEW_REV), make_pod(1, OLD_REV), make_pod(2, OLD_REV)]
        store, etcd = make_store(pods, {f"{CLUSTER}-1": "Member", f"{CLUSTER}-2": "Learner"})
        ticks = iter([0.0, 1.0, 2.0, 99.0, 99.0, 99.0])
        ctx = OperatorContext(deadline=50.0, clock=lambda: next(ticks))
        with self.assertRaises(DeadlineExceeded):
            PodOperator(store).sync(ctx, etcd)
        self.assertEqual(store.writes, [])

    def test_deadline_during_eviction_propagates_without_fallback(self) -> None:
        pods = [make_pod(0, NEW_REV), make_pod(1, OLD_REV), make_pod(2, OLD_REV)]
        store, etcd = make_store(pods, {f"{CLUSTER}-1": "Member", f"{CLUSTER}-2": "Learner"})

        def evict_times_out(namespace: str, name: str, *, timeout: float) -> None:
            store.calls.append(("evict", name))
            raise DeadlineExceeded("Evict", f"kubectl create timed out after {timeout:.1f}s")

        store.evict_pod = evict_times_out
        with self.assertRaises(DeadlineExceeded):
            PodOperator(store).sync(self.ctx, etcd)
        self.assertEqual(store.writes, [("evict", f"{CLUSTER}-2")])
        self.assertEqual([verb for verb, _ in store.calls].count("list_pods"), 1)

    def test_empty_update_revision_is_a_no_op(self) -> None:
        store, etcd = make_store([make_pod(0, OLD_REV, etcd_ready=False), make_pod(1, OLD_REV)])
        store.add_statefulset(StatefulSet(namespace=NAMESPACE, name=CLUSTER, update_revision=""))
        with self.assertLogs("src.pod.operator", level="WARNING"):
            self.assertIsNone(PodOperator(store).sync(self.ctx, etcd))
        self.assertEqual(store.writes, [])
        self.assertNotIn("list_pods", [verb for verb, _ in store.calls])

    def test_contract_methods_are_no_ops(self) -> None:
        store, etcd = make_store([])
        operator = PodOperator(store)
        self.assertEqual(operator.get_existing_resource_names(self.ctx, etcd), [])
        self.assertIsNone(operator.pre_sync(self.ctx, etcd))
        self.assertIsNone(operator.trigger_delete(self.ctx, etcd))
        self.assertEqual(store.calls, [])


if __name__ == "__main__":
    unittest.main()
