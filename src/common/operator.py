"""Contract shared by every per-resource operator driven by the reconciler."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol

from .errors import DeadlineExceeded

if TYPE_CHECKING:  # pragma: no cover
    from src.store.objects import EtcdCluster


@dataclass
class OperatorContext:
    """Per-cycle context: a run id for log correlation and an optional deadline.

    ``deadline`` is expressed on the ``clock`` timeline (``time.monotonic`` by
    default). Blocking calls ask :meth:`remaining` for their timeout, which
    raises :class:`DeadlineExceeded` once the deadline has passed so that no
    new call is issued.
    """

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    deadline: Optional[float] = None
    default_timeout: float = 30.0
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def with_timeout(
        cls,
        timeout: Optional[float],
        *,
        default_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> "OperatorContext":
        deadline = clock() + timeout if timeout is not None else None
        return cls(deadline=deadline, default_timeout=default_timeout, clock=clock)

    def remaining(self, operation: str) -> float:
        if self.deadline is None:
            return self.default_timeout
        left = self.deadline - self.clock()
        if left <= 0:
            raise DeadlineExceeded(operation, f"deadline exceeded before {operation}")
        return min(left, self.default_timeout)


class Operator(Protocol):
    def get_existing_resource_names(self, ctx: OperatorContext, etcd: "EtcdCluster") -> List[str]:
        ...

    def pre_sync(self, ctx: OperatorContext, etcd: "EtcdCluster") -> None:
        ...

    def sync(self, ctx: OperatorContext, etcd: "EtcdCluster") -> None:
        ...

    def trigger_delete(self, ctx: OperatorContext, etcd: "EtcdCluster") -> None:
        ...


__all__ = ["Operator", "OperatorContext"]
