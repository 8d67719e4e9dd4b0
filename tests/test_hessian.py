import sys
import os
import numpy as np
import pytest
import scipy.sparse as sp
try:
    import mathf.rng as rng
    from mathf.hessian import DenseHessian, SparseHessian, factor_sparse_spd
    from other.funcs import verify
except ImportError:
    sys.path.append(os.path.join(os.path.dirname(__file__), ".."))
    import mathf.rng as rng
    from mathf.hessian import DenseHessian, SparseHessian, factor_sparse_spd
    from other.funcs import verify


def make_hessians():
    return [DenseHessian('cholesky'), DenseHessian('pseudo_inverse'), SparseHessian()]


def jacobian_for(hessian, J):
    if isinstance(hessian, SparseHessian):
        return sp.csc_matrix(J)
    return J


@pytest.mark.parametrize('hessian', make_hessians())
def test_update_hessian(hessian):
    J = rng.matrix(12, 5)
    hessian.init(5)
    hessian.update_hessian(jacobian_for(hessian, J))
    H = J.T @ J
    verify(hessian.H, H, atol=1e-12)

    v = rng.vec(5)
    assert np.isclose(hessian.inner_vector_hessian(v), v @ H @ v)


@pytest.mark.parametrize('hessian', make_hessians())
def test_diagonals(hessian):
    J = rng.matrix(12, 5)
    hessian.init(5)
    hessian.update_hessian(jacobian_for(hessian, J))
    H = J.T @ J

    out = np.zeros(5)
    hessian.extract_diagonals(out)
    verify(out, np.diag(H))
    verify(hessian.extract_diagonals(), np.diag(H))

    diag = rng.uniform(5, 5.0, 6.0)
    hessian.set_diagonals(diag)
    np.fill_diagonal(H, diag)
    verify(hessian.H, H, atol=1e-12)


@pytest.mark.parametrize('hessian', make_hessians())
def test_divide_rows_cols(hessian):
    J = rng.matrix(12, 4)
    s = rng.uniform(4, 0.5, 3.0)
    hessian.init(4)
    hessian.update_hessian(jacobian_for(hessian, J))
    hessian.divide_rows_cols(s)
    verify(hessian.H, (J.T @ J) / np.outer(s, s), atol=1e-12)


@pytest.mark.parametrize('hessian', make_hessians())
def test_solve(hessian):
    J = rng.matrix(20, 6)
    b = rng.vec(6)
    hessian.init(6)
    hessian.update_hessian(jacobian_for(hessian, J))
    assert hessian.initialize_solver()
    x = np.zeros(6)
    assert hessian.solve(b, x)
    verify(x, np.linalg.solve(J.T @ J, b), atol=1e-8)


@pytest.mark.parametrize('hessian', [DenseHessian('cholesky'), SparseHessian()])
def test_not_positive_definite(hessian):
    J = rng.matrix(20, 4)
    hessian.init(4)
    hessian.update_hessian(jacobian_for(hessian, J))
    hessian.set_diagonals(np.array([1.0, -1.0, 1.0, 1.0]))
    assert not hessian.initialize_solver()


@pytest.mark.parametrize('hessian', [DenseHessian('cholesky'), SparseHessian()])
def test_singular(hessian):
    # Second parameter has no influence on the residuals
    J = rng.matrix(10, 3)
    J[:, 1] = 0
    hessian.init(3)
    hessian.update_hessian(jacobian_for(hessian, J))
    assert not hessian.initialize_solver()


def test_pseudo_inverse_singular():
    J = rng.matrix(10, 3)
    J[:, 1] = 0
    hessian = DenseHessian('pseudo_inverse')
    hessian.init(3)
    hessian.update_hessian(J)
    assert hessian.initialize_solver()
    x = np.zeros(3)
    b = J.T @ rng.vec(10)
    assert hessian.solve(b, x)
    # Minimum norm solution
    assert abs(x[1]) < 1e-10
    verify(J.T @ J @ x, b, atol=1e-8)


def test_non_finite():
    hessian = DenseHessian()
    hessian.init(2)
    hessian.update_hessian(np.array([[1.0, np.nan], [0.0, 1.0]]))
    assert not hessian.initialize_solver()


@pytest.mark.parametrize('hessian', make_hessians())
def test_solve_before_initialize(hessian):
    hessian.init(2)
    with pytest.raises(RuntimeError):
        hessian.solve(np.ones(2), np.zeros(2))


def test_unknown_solver():
    with pytest.raises(ValueError):
        DenseHessian('qr')


def test_factor_sparse_spd():
    S = rng.spd(8, cond=1e6)
    lu = factor_sparse_spd(sp.csc_matrix(S))
    assert lu is not None
    b = rng.vec(8)
    verify(lu.solve(b), np.linalg.solve(S, b), atol=1e-6)

    # Symmetric permutation matrix, non-singular but indefinite
    P = sp.csc_matrix(np.array([[0.0, 1.0], [1.0, 0.0]]))
    assert factor_sparse_spd(P) is None
    assert factor_sparse_spd(sp.csc_matrix(-S)) is None
