"""Run configuration for the rollout reconciler.

The configuration lives in a YAML mapping (``configs/rollout.yaml`` by
default). Every key is optional; unknown keys are rejected so that typos do
not silently fall back to defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .features import FeatureGates
from .labels import PRIMARY_CONTAINER


@dataclass(frozen=True)
class RolloutConfig:
    kubectl_cmd: str = "kubectl"
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    request_timeout_seconds: float = 30.0
    sync_timeout_seconds: Optional[float] = 120.0
    primary_container: str = PRIMARY_CONTAINER
    requeue_interval_seconds: float = 10.0
    backoff_base_seconds: float = 5.0
    backoff_max_seconds: float = 300.0
    max_cycles: int = 50
    feature_gates: Dict[str, bool] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        if self.sync_timeout_seconds is not None and self.sync_timeout_seconds <= 0:
            raise ValueError("sync_timeout_seconds must be positive when set")
        if self.requeue_interval_seconds < 0:
            raise ValueError("requeue_interval_seconds must not be negative")
        if self.backoff_base_seconds <= 0 or self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds > 0")
        if self.max_cycles < 1:
            raise ValueError("max_cycles must be at least 1")
        if not self.primary_container:
            raise ValueError("primary_container must not be empty")
        # Validates gate names eagerly.
        FeatureGates(self.feature_gates)

    @property
    def gates(self) -> FeatureGates:
        return FeatureGates(self.feature_gates)

    def with_overrides(self, **overrides: Any) -> "RolloutConfig":
        """Return a copy with every non-``None`` override applied."""

        applied = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **applied) if applied else self


def config_from_mapping(data: Mapping[str, Any]) -> RolloutConfig:
    known = {f.name for f in fields(RolloutConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")
    values = dict(data)
    gates = values.get("feature_gates")
    if gates is not None and not isinstance(gates, dict):
        raise ValueError("feature_gates must be a mapping")
    return RolloutConfig(**values)


def load_config(path: Optional[Path]) -> RolloutConfig:
    if path is None:
        return RolloutConfig()
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping")
    return config_from_mapping(data)


__all__ = ["RolloutConfig", "config_from_mapping", "load_config"]
