"""
Radial basis interpolation of scalar fields.

This module implements:
- Fitting an exact radial-basis interpolant through sparse control points
- Conditioning checks that reject duplicate or degenerate control sets
- Side-effect free evaluation, safe to call concurrently
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np
import scipy.linalg
import structlog
from scipy.spatial.distance import cdist

from .errors import IllConditioned

logger = structlog.get_logger()

# Systems with a larger condition number are rejected
MAX_CONDITION_NUMBER = 1e12

# Fewest controls accepted by fit()
MIN_CONTROL_POINTS = 3

# Rows evaluated per kernel matrix block
EVALUATION_BLOCK = 4096


@dataclass(frozen=True)
class ControlPoint:
    """A 2-D coordinate with a target value for one named field."""
    x: float
    y: float
    value: float
    field: str = "elevation"


class RBFKernel(str, Enum):
    """Radial basis functions supported by ``fit``."""
    THIN_PLATE = "thin_plate"
    GAUSSIAN = "gaussian"
    MULTIQUADRIC = "multiquadric"
    INVERSE_MULTIQUADRIC = "inverse_multiquadric"


# Degree of the polynomial tail each kernel needs to be solvable (-1 = none)
KERNEL_POLYNOMIAL_DEGREE = {
    RBFKernel.THIN_PLATE: 1,
    RBFKernel.GAUSSIAN: -1,
    RBFKernel.MULTIQUADRIC: 0,
    RBFKernel.INVERSE_MULTIQUADRIC: -1,
}


def kernel_matrix(r: np.ndarray, kernel: RBFKernel, epsilon: float) -> np.ndarray:
    """Apply ``kernel`` elementwise to a distance array."""
    if kernel == RBFKernel.THIN_PLATE:
        with np.errstate(divide="ignore", invalid="ignore"):
            values = r * r * np.log(r)
        return np.where(r > 0, values, 0.0)
    scaled = r / epsilon
    if kernel == RBFKernel.GAUSSIAN:
        return np.exp(-scaled * scaled)
    if kernel == RBFKernel.MULTIQUADRIC:
        return -np.sqrt(1.0 + scaled * scaled)
    if kernel == RBFKernel.INVERSE_MULTIQUADRIC:
        return 1.0 / np.sqrt(1.0 + scaled * scaled)
    raise ValueError(f"Unknown kernel: {kernel}")


def polynomial_matrix(points: np.ndarray, degree: int) -> np.ndarray:
    """Monomials up to ``degree`` (0 or 1) evaluated at normalized points."""
    if degree < 0:
        return np.empty((len(points), 0))
    columns = [np.ones(len(points))]
    if degree >= 1:
        columns.extend([points[:, 0], points[:, 1]])
    return np.column_stack(columns)


@dataclass(frozen=True, eq=False)
class ScalarField:
    """A fitted radial-basis field. Immutable; evaluation has no side effects."""
    name: str
    kernel: RBFKernel
    epsilon: float
    centers: np.ndarray
    weights: np.ndarray
    coefficients: np.ndarray
    shift: np.ndarray
    scale: float

    @property
    def normalized_centers(self) -> np.ndarray:
        """Control coordinates in the frame the system was solved in."""
        return (self.centers - self.shift) / self.scale

    def evaluate(self, p) -> float:
        """Evaluate the field at a single (x, y) point."""
        return float(self.evaluate_many(np.asarray(p, dtype=np.float64).reshape(1, 2))[0])

    def evaluate_many(self, points: np.ndarray) -> np.ndarray:
        """
        Evaluate the field at many points.

        Args:
            points: (m, 2) array of coordinates

        Returns:
            (m,) array of field values
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        degree = KERNEL_POLYNOMIAL_DEGREE[self.kernel]
        result = np.empty(len(points), dtype=np.float64)

        for start in range(0, len(points), EVALUATION_BLOCK):
            block = points[start:start + EVALUATION_BLOCK]
            normalized = (block - self.shift) / self.scale
            r = cdist(normalized, self.normalized_centers)
            values = kernel_matrix(r, self.kernel, self.epsilon / self.scale) @ self.weights
            if degree >= 0:
                values += polynomial_matrix(normalized, degree) @ self.coefficients
            result[start:start + len(block)] = values

        return result


def default_epsilon(centers: np.ndarray) -> float:
    """Mean nearest-neighbour distance between control points."""
    r = cdist(centers, centers)
    np.fill_diagonal(r, np.inf)
    return float(np.mean(r.min(axis=1)))


def fit(
    controls: Sequence[ControlPoint],
    kernel: RBFKernel = RBFKernel.THIN_PLATE,
    epsilon: Optional[float] = None,
    name: Optional[str] = None,
) -> ScalarField:
    """
    Fit a radial-basis field passing exactly through every control value.

    Args:
        controls: Control points (at least three, with distinct coordinates)
        kernel: Radial basis function
        epsilon: Shape parameter for scale-dependent kernels; defaults to the
            mean nearest-neighbour distance of the controls
        name: Field name; defaults to the controls' field tag

    Returns:
        Fitted, immutable ScalarField
    """
    kernel = RBFKernel(kernel)
    field_name = name or (controls[0].field if controls else "field")

    if len(controls) < MIN_CONTROL_POINTS:
        raise IllConditioned(
            "too few control points",
            field=field_name, count=len(controls), minimum=MIN_CONTROL_POINTS,
        )

    centers = np.array([[c.x, c.y] for c in controls], dtype=np.float64)
    values = np.array([c.value for c in controls], dtype=np.float64)
    if not (np.all(np.isfinite(centers)) and np.all(np.isfinite(values))):
        raise IllConditioned("control points must be finite", field=field_name)

    distances = cdist(centers, centers)
    np.fill_diagonal(distances, np.inf)
    duplicates = np.argwhere(distances <= 1e-12 * max(1.0, float(np.abs(centers).max())))
    if len(duplicates):
        i, j = (int(v) for v in duplicates[0])
        raise IllConditioned(
            "duplicate control point coordinates",
            field=field_name, indices=(i, j), coordinate=tuple(centers[i]),
        )

    if epsilon is None:
        epsilon = default_epsilon(centers)
    if not epsilon > 0:
        raise IllConditioned("shape parameter must be positive", field=field_name, epsilon=epsilon)

    # Kernel and tail share normalized coordinates so the system scale is map-size independent
    shift = centers.mean(axis=0)
    scale = float(np.abs(centers - shift).max()) or 1.0
    normalized = (centers - shift) / scale
    degree = KERNEL_POLYNOMIAL_DEGREE[kernel]
    poly = polynomial_matrix(normalized, degree)
    n, m = len(centers), poly.shape[1]

    system = np.zeros((n + m, n + m))
    system[:n, :n] = kernel_matrix(cdist(normalized, normalized), kernel, epsilon / scale)
    system[:n, n:] = poly
    system[n:, :n] = poly.T
    rhs = np.concatenate([values, np.zeros(m)])

    condition = float(np.linalg.cond(system))
    if not np.isfinite(condition) or condition > MAX_CONDITION_NUMBER:
        raise IllConditioned(
            "interpolation system is singular or near-singular",
            field=field_name, count=n, kernel=kernel.value, condition=condition,
        )

    try:
        solution = scipy.linalg.solve(system, rhs, assume_a="sym")
    except np.linalg.LinAlgError as exc:
        raise IllConditioned(
            "interpolation system could not be solved",
            field=field_name, count=n, kernel=kernel.value,
        ) from exc

    residual = float(np.max(np.abs(system @ solution - rhs)))
    tolerance = 1e-6 * max(1.0, float(np.abs(values).max()))
    if residual > tolerance:
        raise IllConditioned(
            "interpolation does not reproduce control values",
            field=field_name, residual=residual,
        )

    weights = solution[:n]
    coefficients = solution[n:]
    for array in (centers, weights, coefficients, shift):
        array.flags.writeable = False

    logger.info("Fitted scalar field", field=field_name, controls=n,
                kernel=kernel.value, epsilon=epsilon, condition=condition)

    return ScalarField(
        name=field_name,
        kernel=kernel,
        epsilon=float(epsilon),
        centers=centers,
        weights=weights,
        coefficients=coefficients,
        shift=shift,
        scale=scale,
    )
