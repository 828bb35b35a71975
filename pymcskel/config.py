from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from typing import Any, Optional

from .errors import ConfigurationError

# Factor applied to the bounding-box diagonal to get the default short-edge threshold.
EDGELENGTH_DIAG_FACTOR = 0.002


def _check_finite(name: str, value: Any) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a real number, got {value!r}") from None
    if not math.isfinite(v):
        raise ConfigurationError(f"{name} must be finite, got {v}")
    return v


def _non_negative(name: str, value: Any) -> float:
    v = _check_finite(name, value)
    if v < 0.0:
        raise ConfigurationError(f"{name} must be >= 0, got {v}")
    return v


def _positive(name: str, value: Any) -> float:
    v = _check_finite(name, value)
    if v <= 0.0:
        raise ConfigurationError(f"{name} must be > 0, got {v}")
    return v


def _angle(name: str, value: Any) -> float:
    v = _check_finite(name, value)
    if not 0.0 < v < 180.0:
        raise ConfigurationError(f"{name} must lie in (0, 180) degrees, got {v}")
    return v


def _ratio(name: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    v = _check_finite(name, value)
    if v <= 1.0:
        raise ConfigurationError(f"{name} must be > 1 (or None to disable), got {v}")
    return v


def _count(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    v = _check_finite(name, value)
    if not v.is_integer():
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    v = int(v)
    if v < 1:
        raise ConfigurationError(f"{name} must be >= 1, got {v}")
    return v


_VALIDATORS = {
    "omega_L": _non_negative,
    "omega_H": _non_negative,
    "omega_P": _non_negative,
    "edgelength_TH": _non_negative,
    "zero_TH": _positive,
    "alpha_TH": _angle,
    "edge_ratio_TH": _ratio,
    "max_split_passes": _count,
    "max_iterations": _count,
    "area_variation_TH": _non_negative,
}


def validate_parameter(name: str, value: Any) -> Any:
    """Return ``value`` coerced to the parameter's type, or raise ConfigurationError."""
    try:
        check = _VALIDATORS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown parameter: {name}") from None
    return check(name, value)


@dataclass
class ContractionParameters:
    """Tunable thresholds for one contraction driver.

    Attributes
    ----------
    omega_L : float
        Weight of the Laplacian (smoothing) rows.
    omega_H : float
        Weight of the positional anchoring rows.
    edgelength_TH : float
        Absolute length below which an edge is collapsed.
    zero_TH : float
        Numerical tolerance for area-based degeneracy tests.
    alpha_TH : float
        Interior angle (degrees) above which a triangle is split.
    edge_ratio_TH : float or None
        Longest/shortest edge ratio above which a triangle is split. None disables.
    omega_P : float
        Anchoring weight used for fixed vertices instead of ``omega_H``.
    max_split_passes : int
        Upper bound on splitting passes per call.
    max_iterations : int
        Upper bound on driver iterations per ``contract()`` call.
    area_variation_TH : float
        The loop converges when (previous area - area) / original area drops below this.
    """

    omega_L: float = 1.0
    omega_H: float = 0.1
    edgelength_TH: float = 0.002
    zero_TH: float = 1e-7
    alpha_TH: float = 110.0
    edge_ratio_TH: Optional[float] = None
    omega_P: float = 1e3
    max_split_passes: int = 10
    max_iterations: int = 100
    area_variation_TH: float = 1e-4

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> "ContractionParameters":
        for f in fields(self):
            setattr(self, f.name, validate_parameter(f.name, getattr(self, f.name)))
        return self

    def set(self, name: str, value: Any) -> None:
        """Validate and assign one parameter."""
        setattr(self, name, validate_parameter(name, value))

    def as_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def for_mesh(cls, mesh, **overrides: Any) -> "ContractionParameters":
        """Defaults used by the interactive demo: thresholds scaled by the bbox diagonal."""
        params = dict(edgelength_TH=EDGELENGTH_DIAG_FACTOR * float(mesh.bounding_box_diagonal()))
        params.update(overrides)
        return cls(**params)
