import numpy as np
import scipy.sparse as sp


def makeN(V):
    return np.reshape(V, (-1, ))


def as_csc(M):
    ''' Convert dense or sparse input to a CSC matrix.
    '''
    if sp.issparse(M):
        return M.tocsc()
    return sp.csc_matrix(M)


def mult_trans_a(A, B):
    ''' Compute A^T @ B for dense or sparse A and B.

    Args:
    ----
    A:  Matrix on form (M, N).
    B:  Matrix on form (M, K) or vector (M, ).
    Returns:
        A^T @ B. Vector results are always dense of shape (N, ), matrix results keep the format of A.
    '''
    if np.ndim(B) == 1:
        return makeN(np.asarray(A.T @ B))
    C = A.T @ B
    if sp.issparse(C):
        return C.tocsc()
    return np.asarray(C)


def inner_product(a, M, c):
    ''' Compute a^T @ M @ c.
    '''
    return float(np.dot(a, makeN(np.asarray(M @ c))))


def extract_diag(M, out=None):
    ''' Extract diagonal of dense or sparse matrix M.
    '''
    d = M.diagonal()
    if out is None:
        return np.array(d, dtype=np.float64)
    out[:] = d
    return out


def divide_rows_cols(M, a, c=None):
    ''' Compute diag(a)^-1 @ M @ diag(c)^-1.

    Args:
    ----
    M:  Dense or sparse matrix on form (N, K).
    a:  Row divisors on form (N, ).
    c:  Column divisors on form (K, ), defaults to a.
    Returns:
        Scaled matrix in the same format as M.
    '''
    if c is None:
        c = a
    if sp.issparse(M):
        return (sp.diags(1.0 / a) @ M @ sp.diags(1.0 / c)).tocsc()
    return M / a[:, np.newaxis] / c[np.newaxis, :]


def concat_columns(L, R):
    ''' Concatenate the columns of L and R into [L, R].
    '''
    if sp.issparse(L) or sp.issparse(R):
        return sp.hstack([as_csc(L), as_csc(R)], format='csc')
    return np.concatenate((L, R), axis=1)


def replace_diagonal(M, diag):
    ''' Replace the diagonal of M with diag. Dense matrices are modified in place, sparse matrices are copied.
    '''
    if sp.issparse(M):
        # Adding a diagonal matrix ensures missing diagonal entries exist in the sparsity structure
        return (M + sp.diags(diag - M.diagonal())).tocsc()
    np.fill_diagonal(M, diag)
    return M


def to_dense(M):
    if sp.issparse(M):
        return M.toarray()
    return np.asarray(M)
