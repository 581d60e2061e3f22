from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import List, Optional

import typer

from src.common.config import RolloutConfig, load_config
from src.common.features import UPDATE_STRATEGY_ON_DELETE
from src.pod.roles import role_from_holder_identity
from src.store.client import ObjectStore
from src.store.kubectl import KubectlObjectStore
from src.store.memory import InMemoryObjectStore

from .reconciler import EtcdReconciler, ReconcileResult, ReconcileStatus

app = typer.Typer(help="Roll etcd member pods to the StatefulSet update revision, one member at a time.")


@app.command()
def sync(
    name: str = typer.Argument(..., help="Name of the Etcd resource."),
    namespace: str = typer.Option("default", "--namespace", "-n", help="Namespace of the Etcd resource."),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Rollout configuration YAML file.",
    ),
    state: Optional[Path] = typer.Option(
        None,
        "--state",
        help="Run against a YAML/JSON snapshot of the cluster instead of kubectl.",
    ),
    kubectl_cmd: Optional[str] = typer.Option(None, help="Kubectl binary used to reach the cluster."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
) -> None:
    """Run a single reconcile cycle and report its outcome."""

    _configure_logging(log_level)
    settings = _load_settings(config, kubectl_cmd)
    store = _build_store(settings, state)
    reconciler = EtcdReconciler(store, _with_pod_operator(settings))
    result = reconciler.reconcile(namespace, name)
    _report([result], store)
    if result.status is ReconcileStatus.FAILED:
        raise typer.Exit(code=1)


@app.command()
def reconcile(
    name: str = typer.Argument(..., help="Name of the Etcd resource."),
    namespace: str = typer.Option("default", "--namespace", "-n", help="Namespace of the Etcd resource."),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Rollout configuration YAML file.",
    ),
    state: Optional[Path] = typer.Option(
        None,
        "--state",
        help="Run against a YAML/JSON snapshot of the cluster instead of kubectl.",
    ),
    kubectl_cmd: Optional[str] = typer.Option(None, help="Kubectl binary used to reach the cluster."),
    max_cycles: Optional[int] = typer.Option(None, "--max-cycles", min=1, help="Upper bound on reconcile cycles."),
    keep_going: bool = typer.Option(
        False,
        "--keep-going",
        help="Back off and retry after fatal errors instead of stopping.",
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
) -> None:
    """Reconcile repeatedly until the cluster converges."""

    _configure_logging(log_level)
    settings = _load_settings(config, kubectl_cmd)
    store = _build_store(settings, state)
    reconciler = EtcdReconciler(store, _with_pod_operator(settings))
    # A snapshot only changes through our own writes, so there is nothing to wait for.
    sleep = _no_wait if state is not None else time.sleep
    results = reconciler.run_until_converged(
        namespace,
        name,
        max_cycles=max_cycles,
        sleep=sleep,
        stop_on_failure=not keep_going,
    )
    _report(results, store)
    if not results or results[-1].status not in (ReconcileStatus.CONVERGED, ReconcileStatus.SKIPPED):
        raise typer.Exit(code=1)


@app.command()
def score(
    identities: List[str] = typer.Argument(..., help="Lease holder identities such as 'abc123:Leader'."),
) -> None:
    """Show the role and disruption score parsed from lease holder identities."""

    for identity in identities:
        role = role_from_holder_identity(identity)
        typer.echo(f"{identity}\t{role.label}\t{role.score}")


def _no_wait(_delay: float) -> None:
    return None


def _configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"Unknown log level: {level}")
    logging.basicConfig(level=numeric, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _load_settings(path: Optional[Path], kubectl_cmd: Optional[str]) -> RolloutConfig:
    try:
        settings = load_config(path)
    except FileNotFoundError as exc:
        raise typer.BadParameter(f"Config file not found: {path}") from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return settings.with_overrides(kubectl_cmd=kubectl_cmd)


def _with_pod_operator(settings: RolloutConfig) -> RolloutConfig:
    # On unless the config file sets the gate.
    gates = dict(settings.feature_gates)
    gates.setdefault(UPDATE_STRATEGY_ON_DELETE, True)
    return settings.with_overrides(feature_gates=gates)


def _build_store(settings: RolloutConfig, state: Optional[Path]) -> ObjectStore:
    if state is None:
        return KubectlObjectStore(settings.kubectl_cmd, kubeconfig=settings.kubeconfig, context=settings.context)
    try:
        return InMemoryObjectStore.from_file(state)
    except FileNotFoundError as exc:
        raise typer.BadParameter(f"State file not found: {state}") from exc
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid state file {state}: {exc}") from exc


def _report(results: List[ReconcileResult], store: ObjectStore) -> None:
    for result in results:
        typer.echo(json.dumps(result.to_dict()))
    if isinstance(store, InMemoryObjectStore):
        typer.echo(json.dumps({"writes": [list(call) for call in store.writes]}))


if __name__ == "__main__":  # pragma: no cover
    app()
