import sys
import os
import numpy as np
import scipy.sparse as sp
try:
    import mathf.matrix as mat
    import mathf.rng as rng
    from other.funcs import verify
except ImportError:
    sys.path.append(os.path.join(os.path.dirname(__file__), ".."))
    import mathf.matrix as mat
    import mathf.rng as rng
    from other.funcs import verify


def test_mult_trans_a():
    A = rng.matrix(7, 4)
    B = rng.matrix(7, 3)
    v = rng.vec(7)
    verify(mat.mult_trans_a(A, B), A.T @ B)
    verify(mat.mult_trans_a(A, v), A.T @ v)

    C = mat.mult_trans_a(sp.csc_matrix(A), sp.csc_matrix(B))
    assert sp.issparse(C)
    verify(C, A.T @ B)
    g = mat.mult_trans_a(sp.csc_matrix(A), v)
    assert g.shape == (4, )
    verify(g, A.T @ v)


def test_inner_product():
    M = rng.matrix(5, 5)
    a, c = rng.vec(5), rng.vec(5)
    assert np.isclose(mat.inner_product(a, M, c), a @ M @ c)
    assert np.isclose(mat.inner_product(a, sp.csc_matrix(M), c), a @ M @ c)


def test_extract_diag():
    M = rng.matrix(6, 6)
    verify(mat.extract_diag(M), np.diag(M))
    out = np.zeros(6)
    d = mat.extract_diag(sp.csc_matrix(M), out)
    assert d is out
    verify(out, np.diag(M))


def test_divide_rows_cols():
    M = rng.matrix(4, 3)
    a = rng.uniform(4, 1.0, 2.0)
    c = rng.uniform(3, 1.0, 2.0)
    ref = np.diag(1 / a) @ M @ np.diag(1 / c)
    verify(mat.divide_rows_cols(M, a, c), ref)
    verify(mat.divide_rows_cols(sp.csc_matrix(M), a, c), ref)

    S = rng.spd(4)
    verify(mat.divide_rows_cols(S, a), np.diag(1 / a) @ S @ np.diag(1 / a))


def test_replace_diagonal_dense_in_place():
    M = rng.matrix(4, 4)
    diag = rng.vec(4)
    R = mat.replace_diagonal(M, diag)
    assert R is M
    verify(np.diag(M), diag)


def test_replace_diagonal_sparse_missing_entries():
    # Diagonal entries outside the sparsity structure must be created
    M = sp.csc_matrix(np.array([
        [0.0, 2.0, 0.0],
        [2.0, 0.0, 0.0],
        [0.0, 0.0, 3.0]
    ]))
    R = mat.replace_diagonal(M, np.array([5.0, 6.0, 7.0]))
    assert sp.isspmatrix_csc(R)
    verify(R, np.array([
        [5.0, 2.0, 0.0],
        [2.0, 6.0, 0.0],
        [0.0, 0.0, 7.0]
    ]))
    # Input is left untouched
    verify(M.diagonal(), np.array([0.0, 0.0, 3.0]))


def test_concat_columns():
    L = rng.matrix(5, 2)
    R = rng.matrix(5, 3)
    verify(mat.concat_columns(L, R), np.hstack((L, R)))
    J = mat.concat_columns(sp.csc_matrix(L), R)
    assert sp.issparse(J)
    verify(J, np.hstack((L, R)))
