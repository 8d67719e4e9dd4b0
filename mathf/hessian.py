''' Hessian representations used by the Gauss-Newton family of optimizers.

The optimizers only interact with the Hessian through the HessianMath interface, making it possible
to run the same solver over dense, sparse or block structured (see mathf.schur) representations.
'''
import logging
from abc import ABC, abstractmethod

import numpy as np
import scipy.linalg as sla
import scipy.sparse as sp
import scipy.sparse.linalg as spla

import mathf.matrix as mat

logger = logging.getLogger(__name__)


class HessianMath(ABC):
    ''' Operations the optimizers perform on the approximate Hessian.

    Implementations own all of their storage. The only failure which is reported without raising is a failed
    factorization in initialize_solver(), or a failed factorization of a derived system in solve().
    '''

    @abstractmethod
    def init(self, N):
        ''' Initialize the Hessian to be N by N.
        '''

    @abstractmethod
    def inner_vector_hessian(self, v):
        ''' Returns v^T @ H @ v.
        '''

    @abstractmethod
    def extract_diagonals(self, out=None):
        ''' Extract the diagonal elements of the Hessian.

        Args:
        ----
        out:    Optional vector on form (N, ) the diagonal is written to.
        Returns:
            The diagonal vector.
        '''

    @abstractmethod
    def set_diagonals(self, diag):
        ''' Overwrite the diagonal elements of the Hessian.
        '''

    @abstractmethod
    def divide_rows_cols(self, scaling):
        ''' Apply H = diag(s)^-1 @ H @ diag(s)^-1.
        '''

    @abstractmethod
    def initialize_solver(self):
        ''' Factorize the current Hessian.

        Returns:
            False if the factorization failed, e.g. the matrix is not positive definite.
        '''

    @abstractmethod
    def solve(self, rhs, out):
        ''' Solve H @ out = rhs using the last factorization.

        Returns:
            True if the solution written to out is valid.
        '''


class DenseHessian(HessianMath):
    ''' Hessian stored as a dense numpy array.

    Args:
    ----
    solver:     'cholesky' for a fast factorization requiring a positive definite matrix, or 'pseudo_inverse'
                 for a slower least-squares solve able to handle singular systems.
    rcond:      Cut-off ratio for small singular values used by the pseudo inverse.
    '''
    SOLVERS = ('cholesky', 'pseudo_inverse')

    def __init__(self, solver='cholesky', rcond=1e-11):
        if solver not in DenseHessian.SOLVERS:
            raise ValueError('Unknown dense solver %s, expected one of %s' % (solver, str(DenseHessian.SOLVERS)))
        self.solver = solver
        self.rcond = rcond
        self.H = np.zeros((0, 0))
        self._factor = None

    def init(self, N):
        self.H = np.zeros((N, N))
        self._factor = None

    def update_hessian(self, J):
        ''' Compute the Gauss-Newton approximation H = J^T @ J.
        '''
        self.H = np.asarray(mat.mult_trans_a(J, J), dtype=np.float64)

    def inner_vector_hessian(self, v):
        return mat.inner_product(v, self.H, v)

    def extract_diagonals(self, out=None):
        return mat.extract_diag(self.H, out)

    def set_diagonals(self, diag):
        np.fill_diagonal(self.H, diag)

    def divide_rows_cols(self, scaling):
        self.H = mat.divide_rows_cols(self.H, scaling)

    def initialize_solver(self):
        self._factor = None
        if not np.all(np.isfinite(self.H)):
            logger.debug('Hessian contains non-finite values')
            return False
        if self.solver == 'pseudo_inverse':
            self._factor = self.H
            return True
        try:
            self._factor = sla.cho_factor(self.H, check_finite=False)
        except sla.LinAlgError:
            logger.debug('Cholesky factorization failed, matrix is not positive definite')
            return False
        return True

    def solve(self, rhs, out):
        if self._factor is None:
            raise RuntimeError('Solver is not initialized or the last factorization failed.')
        if self.solver == 'pseudo_inverse':
            try:
                x, __, __, __ = np.linalg.lstsq(self._factor, rhs, rcond=self.rcond)
            except np.linalg.LinAlgError:
                logger.debug('Least-squares solve did not converge')
                return False
        else:
            x = sla.cho_solve(self._factor, rhs, check_finite=False)
        out[:] = x
        return bool(np.all(np.isfinite(out)))


def factor_sparse_spd(H):
    ''' Factorize a sparse symmetric matrix, failing if it is not positive definite.

    SuperLU is run in symmetric mode with diagonal pivoting, which for a symmetric matrix is equivalent to an
    LDL^T factorization where the pivots are found on the diagonal of U. A matrix is positive definite if and only
    if all pivots are positive.

    Returns:
        SuperLU object or None on failure.
    '''
    H = mat.as_csc(H)
    if not np.all(np.isfinite(H.data)):
        return None
    try:
        lu = spla.splu(H, permc_spec='MMD_AT_PLUS_A', diag_pivot_thresh=0.0,
                       options=dict(SymmetricMode=True))
    except RuntimeError:
        # Factor is exactly singular
        return None
    if not np.array_equal(lu.perm_r, lu.perm_c):
        # Off-diagonal pivot was selected, can only happen for a zero pivot
        return None
    pivots = lu.U.diagonal()
    if not np.all(np.isfinite(pivots)) or np.any(pivots <= 0):
        return None
    return lu


class SparseHessian(HessianMath):
    ''' Hessian stored as a scipy CSC matrix and factorized with a sparse symmetric LU decomposition.
    '''

    def __init__(self):
        self.H = sp.csc_matrix((0, 0))
        self._factor = None

    def init(self, N):
        self.H = sp.csc_matrix((N, N))
        self._factor = None

    def update_hessian(self, J):
        ''' Compute the Gauss-Newton approximation H = J^T @ J.
        '''
        self.H = mat.as_csc(mat.mult_trans_a(mat.as_csc(J), mat.as_csc(J)))

    def inner_vector_hessian(self, v):
        return mat.inner_product(v, self.H, v)

    def extract_diagonals(self, out=None):
        return mat.extract_diag(self.H, out)

    def set_diagonals(self, diag):
        self.H = mat.replace_diagonal(self.H, diag)

    def divide_rows_cols(self, scaling):
        self.H = mat.divide_rows_cols(self.H, scaling)

    def initialize_solver(self):
        self._factor = factor_sparse_spd(self.H)
        if self._factor is None:
            logger.debug('Sparse factorization failed, matrix is not positive definite')
            return False
        return True

    def solve(self, rhs, out):
        if self._factor is None:
            raise RuntimeError('Solver is not initialized or the last factorization failed.')
        out[:] = self._factor.solve(np.asarray(rhs, dtype=np.float64))
        return bool(np.all(np.isfinite(out)))
