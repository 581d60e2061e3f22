from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from src.common.config import RolloutConfig
from src.common.errors import ERR_GET_ETCD, DruidError, RequeueAfter, wrap_error
from src.common.features import UPDATE_STRATEGY_ON_DELETE
from src.common.labels import SUSPEND_RECONCILE_ANNOTATION
from src.common.operator import Operator, OperatorContext
from src.pod.operator import PodOperator
from src.store.client import ObjectStore, StoreError

logger = logging.getLogger(__name__)


class ReconcileStatus(Enum):
    CONVERGED = "converged"
    REQUEUED = "requeued"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ReconcileResult:
    key: str
    status: ReconcileStatus
    requeue_after: Optional[float] = None
    message: str = ""
    error: Optional[DruidError] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"key": self.key, "status": self.status.value}
        if self.requeue_after is not None:
            data["requeue_after"] = self.requeue_after
        if self.message:
            data["message"] = self.message
        if self.error is not None:
            data["code"] = self.error.code
        return data


def build_operators(store: ObjectStore, config: RolloutConfig) -> List[Operator]:
    operators: List[Operator] = []
    if config.gates.enabled(UPDATE_STRATEGY_ON_DELETE):
        operators.append(PodOperator(store, primary_container=config.primary_container))
    return operators


class EtcdReconciler:
    """Runs the registered operators for one cluster and decides when to come back.

    The requeue signal maps to a fixed short delay. Fatal errors back off
    exponentially per cluster, from ``backoff_base_seconds`` up to
    ``backoff_max_seconds``; any non-failing cycle resets the backoff.
    """

    def __init__(
        self,
        store: ObjectStore,
        config: Optional[RolloutConfig] = None,
        operators: Optional[Sequence[Operator]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.config = config or RolloutConfig()
        self.operators = list(operators) if operators is not None else build_operators(store, self.config)
        self.clock = clock
        self._failures: Dict[str, int] = {}

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        key = f"{namespace}/{name}"
        ctx = OperatorContext.with_timeout(
            self.config.sync_timeout_seconds,
            default_timeout=self.config.request_timeout_seconds,
            clock=self.clock,
        )
        try:
            etcd = self._get_etcd(ctx, namespace, name)
            if etcd.annotations.get(SUSPEND_RECONCILE_ANNOTATION) in ("true", "True"):
                logger.info("[%s] reconciliation suspended by annotation", key)
                self._failures.pop(key, None)
                return ReconcileResult(key, ReconcileStatus.SKIPPED, message="reconciliation suspended")
            for operator in self.operators:
                operator.pre_sync(ctx, etcd)
            for operator in self.operators:
                operator.sync(ctx, etcd)
        except RequeueAfter as signal:
            self._failures.pop(key, None)
            return ReconcileResult(
                key,
                ReconcileStatus.REQUEUED,
                requeue_after=self.config.requeue_interval_seconds,
                message=signal.reason,
            )
        except DruidError as exc:
            delay = self._next_backoff(key)
            logger.error("[%s] reconcile failed, retrying in %.1fs: %s", key, delay, exc)
            return ReconcileResult(key, ReconcileStatus.FAILED, requeue_after=delay, message=str(exc), error=exc)
        self._failures.pop(key, None)
        return ReconcileResult(key, ReconcileStatus.CONVERGED)

    def run_until_converged(
        self,
        namespace: str,
        name: str,
        *,
        max_cycles: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
        stop_on_failure: bool = True,
    ) -> List[ReconcileResult]:
        limit = max_cycles if max_cycles is not None else self.config.max_cycles
        results: List[ReconcileResult] = []
        for _ in range(limit):
            result = self.reconcile(namespace, name)
            results.append(result)
            if result.status in (ReconcileStatus.CONVERGED, ReconcileStatus.SKIPPED):
                break
            if result.status is ReconcileStatus.FAILED and stop_on_failure:
                break
            if result.requeue_after:
                sleep(result.requeue_after)
        return results

    def _get_etcd(self, ctx: OperatorContext, namespace: str, name: str):
        try:
            return self.store.get_etcd(namespace, name, timeout=ctx.remaining("Get"))
        except StoreError as exc:
            raise wrap_error(exc, ERR_GET_ETCD, "Get", f"Error getting etcd: {namespace}/{name}") from exc

    def _next_backoff(self, key: str) -> float:
        attempts = self._failures.get(key, 0)
        self._failures[key] = attempts + 1
        delay = self.config.backoff_base_seconds * (2 ** min(attempts, 32))
        return min(delay, self.config.backoff_max_seconds)


__all__ = ["EtcdReconciler", "ReconcileResult", "ReconcileStatus", "build_operators"]
