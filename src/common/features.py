from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

UPDATE_STRATEGY_ON_DELETE = "UpdateStrategyOnDelete"


@dataclass(frozen=True)
class FeatureSpec:
    default: bool
    stage: str


# Gates the pod operator; requires a StatefulSet with the OnDelete update strategy.
DEFAULT_FEATURES: Dict[str, FeatureSpec] = {
    UPDATE_STRATEGY_ON_DELETE: FeatureSpec(default=False, stage="alpha"),
}


class FeatureGates:
    def __init__(self, overrides: Optional[Mapping[str, object]] = None) -> None:
        self._enabled = {name: spec.default for name, spec in DEFAULT_FEATURES.items()}
        for name, value in (overrides or {}).items():
            if name not in DEFAULT_FEATURES:
                raise ValueError(f"unknown feature gate: {name}")
            if not isinstance(value, bool):
                raise ValueError(f"feature gate {name} must be a boolean, got {value!r}")
            self._enabled[name] = value

    def enabled(self, name: str) -> bool:
        try:
            return self._enabled[name]
        except KeyError:
            raise ValueError(f"unknown feature gate: {name}") from None

    def as_dict(self) -> Dict[str, bool]:
        return dict(self._enabled)


__all__ = ["DEFAULT_FEATURES", "FeatureGates", "FeatureSpec", "UPDATE_STRATEGY_ON_DELETE"]
