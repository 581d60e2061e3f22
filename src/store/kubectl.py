from __future__ import annotations

import json
import logging
import re
import subprocess
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from src.common.errors import DeadlineExceeded
from src.common.labels import format_selector

from .client import StoreError
from .objects import EtcdCluster, Lease, Pod, StatefulSet

logger = logging.getLogger(__name__)

ETCD_RESOURCE = "etcds.druid.gardener.cloud"
_REASON_PATTERN = re.compile(r"Error from server \((\w+)\)")

_T = TypeVar("_T")


def parse_reason(stderr: str) -> Optional[str]:
    match = _REASON_PATTERN.search(stderr or "")
    return match.group(1) if match else None


class KubectlObjectStore:
    """Object store backed by the ``kubectl`` binary.

    Every call runs ``kubectl`` once with ``-o json`` (or a raw POST for the
    eviction subresource) and maps failures onto :class:`StoreError`, keeping
    the API server reason so callers can tell a blocked eviction from a
    missing object.
    """

    def __init__(
        self,
        kubectl_cmd: str = "kubectl",
        *,
        kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
    ) -> None:
        self.kubectl_cmd = kubectl_cmd
        self.kubeconfig = kubeconfig
        self.context = context

    def get_etcd(self, namespace: str, name: str, *, timeout: float) -> EtcdCluster:
        doc = self._get_json(["get", ETCD_RESOURCE, name, "-n", namespace], timeout)
        return _parse(EtcdCluster.from_dict, doc)

    def get_statefulset(self, namespace: str, name: str, *, timeout: float) -> StatefulSet:
        doc = self._get_json(["get", "statefulset", name, "-n", namespace], timeout)
        return _parse(StatefulSet.from_dict, doc)

    def list_pods(self, namespace: str, selector: Dict[str, str], *, timeout: float) -> List[Pod]:
        doc = self._get_json(["get", "pods", "-n", namespace, "-l", format_selector(selector)], timeout)
        items = doc.get("items") or []
        if not isinstance(items, list):
            raise StoreError("kubectl returned a pod list without an items array")
        return [_parse(Pod.from_dict, item) for item in items]

    def get_lease(self, namespace: str, name: str, *, timeout: float) -> Lease:
        doc = self._get_json(["get", "lease", name, "-n", namespace], timeout)
        return _parse(Lease.from_dict, doc)

    def delete_pod(self, namespace: str, name: str, *, timeout: float) -> None:
        self._run(["delete", "pod", name, "-n", namespace, "--wait=false"], timeout)

    def evict_pod(self, namespace: str, name: str, *, timeout: float) -> None:
        body = {
            "apiVersion": "policy/v1",
            "kind": "Eviction",
            "metadata": {"name": name, "namespace": namespace},
        }
        path = f"/api/v1/namespaces/{namespace}/pods/{name}/eviction"
        self._run(["create", "--raw", path, "-f", "-"], timeout, stdin=json.dumps(body))

    def _base_cmd(self) -> List[str]:
        cmd = [self.kubectl_cmd]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        if self.context:
            cmd.extend(["--context", self.context])
        return cmd

    def _get_json(self, args: Sequence[str], timeout: float) -> Dict[str, Any]:
        output = self._run([*args, "-o", "json"], timeout)
        try:
            data = json.loads(output or "{}")
        except json.JSONDecodeError as exc:
            raise StoreError(f"kubectl returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError("kubectl returned a non-object document")
        return data

    def _run(self, args: Sequence[str], timeout: float, stdin: Optional[str] = None) -> str:
        cmd = [*self._base_cmd(), *args, f"--request-timeout={max(1, int(timeout))}s"]
        logger.debug("running %s", " ".join(cmd))
        try:
            completed = subprocess.run(
                cmd,
                input=stdin.encode("utf-8") if stdin is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout,
                check=True,
            )
        except FileNotFoundError as exc:
            raise StoreError(f"kubectl executable not found: {self.kubectl_cmd}") from exc
        except subprocess.TimeoutExpired as exc:
            raise DeadlineExceeded("kubectl", f"kubectl {args[0]} timed out after {timeout:.1f}s", exc) from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="ignore").strip()
            stdout = (exc.stdout or b"").decode("utf-8", errors="ignore").strip()
            detail = stderr or stdout or str(exc)
            raise StoreError(detail, reason=parse_reason(stderr)) from exc
        return (completed.stdout or b"").decode("utf-8", errors="ignore")


def _parse(factory: Callable[[Any], _T], doc: Any) -> _T:
    try:
        return factory(doc)
    except ValueError as exc:
        raise StoreError(f"kubectl returned a malformed object: {exc}") from exc


__all__ = ["ETCD_RESOURCE", "KubectlObjectStore", "parse_reason"]
