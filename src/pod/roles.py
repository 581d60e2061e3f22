from __future__ import annotations

from enum import Enum
from typing import Optional

from src.store.objects import Lease

ROLE_SEPARATOR = ":"


class Role(Enum):
    UNKNOWN = ("Unknown", 0)
    LEARNER = ("Learner", 1)
    MEMBER = ("Member", 2)
    LEADER = ("Leader", 3)

    def __init__(self, label: str, score: int) -> None:
        self.label = label
        self.score = score

    @classmethod
    def from_label(cls, label: str) -> "Role":
        for role in cls:
            if role is not cls.UNKNOWN and role.label == label:
                return role
        return cls.UNKNOWN


def role_from_holder_identity(holder_identity: Optional[str]) -> Role:
    """Parse ``"<member-id>:<Role>"``; anything malformed is ``Role.UNKNOWN``."""

    if holder_identity is None:
        return Role.UNKNOWN
    fields = holder_identity.split(ROLE_SEPARATOR)
    if len(fields) < 2:
        return Role.UNKNOWN
    return Role.from_label(fields[1])


def score_lease(lease: Lease) -> int:
    return role_from_holder_identity(lease.holder_identity).score


__all__ = ["ROLE_SEPARATOR", "Role", "role_from_holder_identity", "score_lease"]
