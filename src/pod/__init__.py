"""Rolling replacement of etcd member pods, one member per reconcile."""

from .disruption import DisruptionDecision, DisruptionOutcome, decide, disrupt
from .health import are_all_primary_containers_ready, is_primary_container_ready
from .operator import PodOperator
from .revision import MemberState, RevisionPartition, classify_members
from .roles import Role, role_from_holder_identity, score_lease
from .selection import ScoredCandidate, select_candidate

__all__ = [
    "DisruptionDecision",
    "DisruptionOutcome",
    "MemberState",
    "PodOperator",
    "RevisionPartition",
    "Role",
    "ScoredCandidate",
    "are_all_primary_containers_ready",
    "classify_members",
    "decide",
    "disrupt",
    "is_primary_container_ready",
    "role_from_holder_identity",
    "score_lease",
    "select_candidate",
]
