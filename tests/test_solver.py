import numpy as np
import pytest
import scipy.sparse as sp

from pymcskel.errors import NumericalError
from pymcskel.solver import LSQRSolver, NormalEquationSolver, SparseLinearSolver


def tall_system(seed=0):
    rng = np.random.default_rng(seed)
    R = sp.csr_matrix(rng.normal(size=(30, 10)) * (rng.random((30, 10)) < 0.3))
    A = sp.vstack([R, 0.5 * sp.identity(10)]).tocsr()
    b = rng.normal(size=40)
    return A, b


def test_solvers_satisfy_protocol():
    assert isinstance(NormalEquationSolver(), SparseLinearSolver)
    assert isinstance(LSQRSolver(), SparseLinearSolver)


def test_normal_equations_match_dense_lstsq():
    A, b = tall_system()
    solver = NormalEquationSolver()
    fac = solver.factor(A)
    assert fac.success
    assert fac.shape == (40, 10)
    assert np.isfinite(fac.log_determinant)
    assert 0.0 < fac.rcond <= 1.0

    x = solver.solve(fac, b)
    x_ref = np.linalg.lstsq(A.toarray(), b, rcond=None)[0]
    assert np.allclose(x, x_ref, atol=1e-8)


def test_lsqr_agrees_with_normal_equations():
    A, b = tall_system(seed=3)
    direct = NormalEquationSolver()
    iterative = LSQRSolver()
    x1 = direct.solve(direct.factor(A), b)
    x2 = iterative.solve(iterative.factor(A), b)
    assert np.allclose(x1, x2, atol=1e-6)


def test_singular_matrix_reports_failure():
    A = sp.csr_matrix((6, 3))
    for solver in (NormalEquationSolver(), LSQRSolver()):
        fac = solver.factor(A)
        assert not fac.success
        assert fac.message
        with pytest.raises(NumericalError):
            solver.solve(fac, np.ones(6))


def test_rank_deficient_matrix_reports_failure():
    # duplicated column, AᵗA singular
    col = np.arange(1.0, 7.0)
    A = sp.csr_matrix(np.column_stack([col, col]))
    fac = NormalEquationSolver().factor(A)
    assert not fac.success


def test_non_finite_matrix_reports_failure():
    A = sp.csr_matrix(np.array([[1.0, 0.0], [0.0, np.nan], [1.0, 1.0]]))
    assert not NormalEquationSolver().factor(A).success
    assert not LSQRSolver().factor(A).success
