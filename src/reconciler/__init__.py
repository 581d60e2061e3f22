"""Reconcile loop and CLI driving the rollout operators."""

from .reconciler import EtcdReconciler, ReconcileResult, ReconcileStatus, build_operators

__all__ = ["EtcdReconciler", "ReconcileResult", "ReconcileStatus", "build_operators"]
