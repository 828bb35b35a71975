"""Sparse least-squares solver adapters.

The contraction step only needs two calls from a solver:

- ``factor(A)`` returning a ``Factorization`` whose ``success`` flag tells
  whether the matrix could be factored, together with a determinant-like
  diagnostic;
- ``solve(factorization, b)`` returning the least-squares solution of
  ``A x = b``.

Failures are signalled (``success=False`` or ``NumericalError``), never
silently turned into garbage positions.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .errors import NumericalError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class Factorization:
    success: bool
    log_determinant: float  # log|det(AᵗA)|, nan when the solver has no such notion
    rcond: float  # smallest / largest pivot magnitude, nan when unknown
    shape: tuple
    message: str = ""
    handle: Any = field(default=None, repr=False)


@runtime_checkable
class SparseLinearSolver(Protocol):
    def factor(self, A: sp.spmatrix) -> Factorization:
        ...

    def solve(self, factorization: Factorization, b: np.ndarray) -> np.ndarray:
        ...


def _check_finite_matrix(A: sp.spmatrix) -> Optional[str]:
    data = A.tocsr().data
    if data.size and not np.all(np.isfinite(data)):
        return "matrix has non-finite entries"
    return None


class NormalEquationSolver:
    """Direct solve of the normal equations AᵗA x = Aᵗb with SuperLU.

    The factorization is reused for the three coordinate channels. It is
    reported as failed when SuperLU hits an exactly zero pivot or when the
    pivot ratio min|U_ii| / max|U_ii| falls below ``rcond_TH``.

    Parameters
    ----------
    rcond_TH : float, default 1e-14
        Smallest acceptable pivot ratio.
    permc_spec : str, default "COLAMD"
        Column ordering passed to ``scipy.sparse.linalg.splu``.
    """

    def __init__(self, rcond_TH: float = 1e-14, permc_spec: str = "COLAMD"):
        self.rcond_TH = float(rcond_TH)
        self.permc_spec = permc_spec

    def factor(self, A: sp.spmatrix) -> Factorization:
        A = sp.csr_matrix(A)
        shape = A.shape
        reason = _check_finite_matrix(A)
        if reason:
            return Factorization(False, float("nan"), float("nan"), shape, reason)
        if shape[1] == 0:
            return Factorization(False, float("nan"), float("nan"), shape, "empty system")

        AtA = (A.T @ A).tocsc()
        try:
            lu = spla.splu(AtA, permc_spec=self.permc_spec)
        except RuntimeError as e:
            # SuperLU reports exactly singular factors this way
            return Factorization(False, float("-inf"), 0.0, shape, str(e))

        pivots = np.abs(lu.U.diagonal())
        pmax = float(pivots.max())
        rcond = float(pivots.min()) / pmax if pmax > 0 else 0.0
        with np.errstate(divide="ignore"):
            log_det = float(np.sum(np.log(pivots)))
        if not np.isfinite(rcond) or rcond < self.rcond_TH:
            return Factorization(
                False, log_det, rcond, shape,
                f"normal matrix is singular or ill-conditioned (pivot ratio {rcond:.3g})",
            )
        return Factorization(True, log_det, rcond, shape, handle=(A, lu))

    def solve(self, factorization: Factorization, b: np.ndarray) -> np.ndarray:
        if not factorization.success or factorization.handle is None:
            raise NumericalError(f"Cannot solve with a failed factorization: {factorization.message}")
        A, lu = factorization.handle
        x = lu.solve(A.T @ np.asarray(b, dtype=float))
        if not np.all(np.isfinite(x)):
            raise NumericalError("Normal-equation solve produced non-finite values")
        return x


class LSQRSolver:
    """Iterative least-squares solve with ``scipy.sparse.linalg.lsqr``.

    There is nothing to factor; ``factor`` only screens the matrix for
    non-finite entries and empty columns (which make AᵗA singular). ``solve``
    raises NumericalError when LSQR stops because of conditioning or the
    iteration limit (``iter_lim``, ten times the number of unknowns when None).
    """

    _FAILED_STOPS = {
        3: "condition number estimate exceeded conlim",
        6: "condition number estimate exceeded 1/eps",
        7: "iteration limit reached",
    }

    def __init__(
        self,
        atol: float = 1e-12,
        btol: float = 1e-12,
        conlim: float = 1e12,
        iter_lim: Optional[int] = None,
    ):
        self.atol = atol
        self.btol = btol
        self.conlim = conlim
        self.iter_lim = iter_lim

    def factor(self, A: sp.spmatrix) -> Factorization:
        A = sp.csc_matrix(A, copy=True)
        shape = A.shape
        reason = _check_finite_matrix(A)
        if reason:
            return Factorization(False, float("nan"), float("nan"), shape, reason)
        A.eliminate_zeros()
        col_nnz = np.diff(A.indptr)
        if shape[1] == 0 or np.any(col_nnz == 0):
            return Factorization(False, float("-inf"), 0.0, shape, "matrix has empty columns")
        return Factorization(True, float("nan"), float("nan"), shape, handle=A)

    def solve(self, factorization: Factorization, b: np.ndarray) -> np.ndarray:
        if not factorization.success or factorization.handle is None:
            raise NumericalError(f"Cannot solve with a failed factorization: {factorization.message}")
        A = factorization.handle
        res = spla.lsqr(
            A, np.asarray(b, dtype=float),
            atol=self.atol, btol=self.btol, conlim=self.conlim,
            iter_lim=self.iter_lim or 10 * A.shape[1],
        )
        x, istop, itn = res[0], res[1], res[2]
        if istop in self._FAILED_STOPS:
            raise NumericalError(f"LSQR failed after {itn} iterations: {self._FAILED_STOPS[istop]}")
        if not np.all(np.isfinite(x)):
            raise NumericalError("LSQR produced non-finite values")
        logger.debug("LSQR converged in %d iterations (istop=%d)", itn, istop)
        return x
