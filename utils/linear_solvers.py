"""
Sparse linear solvers for the pore-network pressure system.

The hydraulic system is a weighted graph Laplacian: symmetric and positive
(semi-)definite. Conductances are tiny (~1e-17 m³/(Pa·s) for micron-scale
throats), so convergence and breakdown tests are relative to the system's
own scale rather than absolute.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import scipy.sparse as sp

logger = logging.getLogger(__name__)


@dataclass
class CGResult:
    """Outcome of a conjugate gradient solve"""
    x: np.ndarray
    iterations: int
    residual_norm: float
    converged: bool
    breakdown: bool = False


def conjugate_gradient(
    A: sp.spmatrix,
    b: np.ndarray,
    x0: Optional[np.ndarray] = None,
    tolerance: float = 1e-6,
    max_iterations: int = 5000,
) -> CGResult:
    """
    Jacobi-preconditioned conjugate gradient.

    Converged when ``||r|| <= tolerance * max(||b||, ||A x0||)``. A zero
    reference (zero right-hand side and zero warm start) returns ``x0``
    immediately. If ``pᵀAp`` becomes numerically zero relative to the
    diagonal scale, the iteration stops and the best iterate seen so far is
    returned with ``breakdown=True``; no exception is raised.

    Args:
        A: Symmetric positive (semi-)definite sparse matrix
        b: Right-hand side
        x0: Warm start (zeros if None)
        tolerance: Relative residual tolerance
        max_iterations: Iteration cap

    Returns:
        CGResult with the solution and convergence diagnostics
    """
    n = b.shape[0]
    x = np.zeros(n) if x0 is None else np.array(x0, dtype=float)
    if n == 0:
        return CGResult(x=x, iterations=0, residual_norm=0.0, converged=True)

    diag = A.diagonal()
    inv_diag = np.ones(n)
    nonzero = diag != 0
    inv_diag[nonzero] = 1.0 / diag[nonzero]
    diag_scale = float(np.max(np.abs(diag))) if np.any(nonzero) else 1.0

    Ax = A @ x
    r = b - Ax
    reference = max(float(np.linalg.norm(b)), float(np.linalg.norm(Ax)))
    if reference == 0.0:
        return CGResult(x=x, iterations=0, residual_norm=0.0, converged=True)

    threshold = tolerance * reference
    residual = float(np.linalg.norm(r))
    if residual <= threshold:
        return CGResult(x=x, iterations=0, residual_norm=residual, converged=True)

    best_x = x.copy()
    best_residual = residual
    eps = np.finfo(float).eps

    z = inv_diag * r
    p = z.copy()
    rz = float(r @ z)

    for iteration in range(1, max_iterations + 1):
        Ap = A @ p
        pAp = float(p @ Ap)
        if abs(pAp) <= eps * diag_scale * float(p @ p):
            logger.debug(f"CG breakdown at iteration {iteration}: pAp = {pAp:.3e}")
            return CGResult(
                x=best_x, iterations=iteration - 1, residual_norm=best_residual,
                converged=False, breakdown=True,
            )

        alpha = rz / pAp
        x += alpha * p
        r -= alpha * Ap
        residual = float(np.linalg.norm(r))
        if residual < best_residual:
            best_residual = residual
            best_x = x.copy()
        if residual <= threshold:
            return CGResult(x=x, iterations=iteration, residual_norm=residual, converged=True)

        z = inv_diag * r
        rz_new = float(r @ z)
        p = z + (rz_new / rz) * p
        rz = rz_new

    logger.warning(
        f"CG did not converge in {max_iterations} iterations "
        f"(residual {best_residual:.3e}, target {threshold:.3e})"
    )
    return CGResult(x=best_x, iterations=max_iterations, residual_norm=best_residual, converged=False)
