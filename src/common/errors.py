"""Error taxonomy shared by the pod operator and the reconciler."""

from __future__ import annotations

from typing import Optional

ERR_GET_STATEFULSET = "ERR_GET_STATEFULSET"
ERR_LIST_PODS = "ERR_LIST_PODS"
ERR_DELETE_POD = "ERR_DELETE_POD"
ERR_EVICT_POD = "ERR_EVICT_POD"
ERR_GET_LEASE = "ERR_GET_LEASE"
ERR_GET_ETCD = "ERR_GET_ETCD"
ERR_REQUEUE_AFTER = "ERR_REQUEUE_AFTER"
ERR_DEADLINE_EXCEEDED = "ERR_DEADLINE_EXCEEDED"


class DruidError(Exception):
    """Raised when an operation against the cluster fails.

    ``code`` identifies the failing step, ``operation`` the verb that was
    attempted (``Get``, ``List``, ``Delete``, ``Evict``, ``Sync``) and
    ``message`` the context (cluster or member identity). The underlying
    exception, when there is one, is available as ``cause`` and is also
    chained through ``__cause__`` by the callers.
    """

    def __init__(
        self,
        code: str,
        operation: str,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.operation = operation
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        text = f"[Operation: {self.operation}, Code: {self.code}] message: {self.message}"
        if self.cause is not None:
            text += f", cause: {self.cause}"
        return text


class RequeueAfter(DruidError):
    """Control-flow signal: the cycle made progress, run it again shortly."""

    def __init__(self, reason: str, operation: str = "Sync") -> None:
        if not reason:
            raise ValueError("requeue signal requires a reason")
        super().__init__(ERR_REQUEUE_AFTER, operation, reason)

    @property
    def reason(self) -> str:
        return self.message


class DeadlineExceeded(DruidError):
    """Raised when the cycle deadline expires before or during a cluster call."""

    def __init__(self, operation: str, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(ERR_DEADLINE_EXCEEDED, operation, message, cause)


def wrap_error(cause: BaseException, code: str, operation: str, message: str) -> DruidError:
    """Wrap ``cause`` into a :class:`DruidError` unless it already is a deadline error."""

    if isinstance(cause, DeadlineExceeded):
        return cause
    return DruidError(code, operation, message, cause)


def is_requeue(err: Optional[BaseException]) -> bool:
    return isinstance(err, RequeueAfter)


__all__ = [
    "DeadlineExceeded",
    "DruidError",
    "ERR_DEADLINE_EXCEEDED",
    "ERR_DELETE_POD",
    "ERR_EVICT_POD",
    "ERR_GET_ETCD",
    "ERR_GET_LEASE",
    "ERR_GET_STATEFULSET",
    "ERR_LIST_PODS",
    "ERR_REQUEUE_AFTER",
    "RequeueAfter",
    "is_requeue",
    "wrap_error",
]
