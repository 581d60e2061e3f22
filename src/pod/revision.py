from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List

from src.common.labels import REVISION_HASH_LABEL
from src.store.objects import Pod


@dataclass
class MemberState:
    """A member as tracked during one cycle.

    ``pending_removal`` marks a member whose deletion was requested in this
    cycle. Such a member is counted towards the updated bucket (its
    replacement will come up at the desired revision) but never as healthy.
    """

    pod: Pod
    pending_removal: bool = False

    @property
    def name(self) -> str:
        return self.pod.name


@dataclass
class RevisionPartition:
    revision: str
    updated: List[MemberState] = field(default_factory=list)
    outdated: List[MemberState] = field(default_factory=list)

    def is_converged(self, replicas: int) -> bool:
        return len(self.updated) == replicas


def classify_members(pods: Iterable[Pod], revision: str) -> RevisionPartition:
    partition = RevisionPartition(revision=revision)
    for pod in pods:
        member = MemberState(pod)
        if pod.label(REVISION_HASH_LABEL) == revision:
            partition.updated.append(member)
        else:
            partition.outdated.append(member)
    return partition


__all__ = ["MemberState", "RevisionPartition", "classify_members"]
