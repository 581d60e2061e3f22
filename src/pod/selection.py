from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from src.common.errors import ERR_GET_LEASE, wrap_error
from src.common.operator import OperatorContext
from src.store.client import ObjectStore, StoreError
from src.store.objects import Pod

from .roles import Role, role_from_holder_identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredCandidate:
    pod: Pod
    role: Role

    @property
    def score(self) -> int:
        return self.role.score


def select_candidate(
    store: ObjectStore,
    ctx: OperatorContext,
    pods: Iterable[Pod],
) -> Optional[ScoredCandidate]:
    """Pick the least critical member to disrupt, or ``None`` when there is none.

    Each member's role comes from the lease that shares its name. The lowest
    score wins and ties keep the first member seen.
    """

    best: Optional[ScoredCandidate] = None
    for pod in pods:
        try:
            lease = store.get_lease(pod.namespace, pod.name, timeout=ctx.remaining("Get"))
        except StoreError as exc:
            raise wrap_error(exc, ERR_GET_LEASE, "Get", f"Error getting lease for pod: {pod.key}") from exc
        candidate = ScoredCandidate(pod, role_from_holder_identity(lease.holder_identity))
        logger.debug("%s has role %s (score %d)", pod.key, candidate.role.label, candidate.score)
        if best is None or candidate.score < best.score:
            best = candidate
    return best


__all__ = ["ScoredCandidate", "select_candidate"]
