''' Block structured Hessian solved with the Schur complement.

The approximate Hessian J^T @ J for a Jacobian split into a left and right part, J = [L, R], has the block form:

    H = [A B; B^T D],   A = L^T L,  B = L^T R,  D = R^T R

The system H @ [x1; x2] = [b1; b2] is solved by block elimination:

    1) D' = D - B^T inv(A) B  and  b2' = b2 - B^T inv(A) b1
    2) D' x2 = b2'
    3) A x1 = b1 - B x2

This avoids factorizing the full matrix, which is a large saving when A is block diagonal (many independent
local parameters) and D is small (few shared global parameters).

[1] Triggs, Bill, et al. "Bundle adjustment - a modern synthesis." International workshop on vision algorithms.
    Springer, Berlin, Heidelberg, 1999.
'''
import logging
from abc import abstractmethod

import numpy as np
import scipy.linalg as sla

import mathf.matrix as mat
from mathf.hessian import HessianMath, factor_sparse_spd

logger = logging.getLogger(__name__)


class SchurComplementHessian(HessianMath):
    ''' Shared logic for the dense and sparse Schur complement Hessians.

    Two factorizations are kept, one for A which is refactored in initialize_solver() and one for the reduced
    system D' which is refactored each time solve() is called.
    '''

    def __init__(self):
        self.A = np.zeros((0, 0))
        self.B = np.zeros((0, 0))
        self.D = np.zeros((0, 0))
        self._factor_A = None
        self._factor_D = None

    @property
    def num_left(self):
        return self.A.shape[0]

    @property
    def num_right(self):
        return self.D.shape[0]

    def init(self, N):
        # Block sizes are only known once the Jacobian has been evaluated, see compute_hessian()
        self._factor_A = None
        self._factor_D = None

    @abstractmethod
    def compute_hessian(self, L, R):
        ''' Compute the Hessian blocks A, B and D from the left and right Jacobian.
        '''

    @abstractmethod
    def _factor(self, M):
        ''' Factorize the positive definite block M, returning None on failure.
        '''

    @abstractmethod
    def _solve_A(self, rhs):
        ''' Solve A @ x = rhs with the factorization of A, rhs is a vector or a matrix.
        '''

    def compute_gradient(self, L, R, residuals, out=None):
        ''' Compute the gradient g = [L, R]^T @ r.

        Args:
        ----
        L:          Left Jacobian (M, N1).
        R:          Right Jacobian (M, N2).
        residuals:  Residual vector (M, ), or the loss gradient transformed residuals.
        out:        Optional output vector (N1 + N2, ).
        '''
        n1 = L.shape[1]
        if out is None:
            out = np.empty(n1 + R.shape[1])
        out[:n1] = mat.mult_trans_a(L, residuals)
        out[n1:] = mat.mult_trans_a(R, residuals)
        return out

    def inner_vector_hessian(self, v):
        ''' Compute v^T H v using the block form.

        [x; y]^T [A B; B^T D] [x; y] = x^T A x + 2 x^T B y + y^T D y
        '''
        n1 = self.num_left
        v1, v2 = v[:n1], v[n1:]
        s = mat.inner_product(v1, self.A, v1)
        if self.num_right > 0:
            s += 2 * mat.inner_product(v1, self.B, v2)
            s += mat.inner_product(v2, self.D, v2)
        return s

    def extract_diagonals(self, out=None):
        diag = np.concatenate((mat.extract_diag(self.A), mat.extract_diag(self.D)))
        if out is None:
            return diag
        out[:] = diag
        return out

    def set_diagonals(self, diag):
        n1 = self.num_left
        self.A = mat.replace_diagonal(self.A, diag[:n1])
        self.D = mat.replace_diagonal(self.D, diag[n1:])

    def divide_rows_cols(self, scaling):
        n1 = self.num_left
        s1, s2 = scaling[:n1], scaling[n1:]
        self.A = mat.divide_rows_cols(self.A, s1)
        self.B = mat.divide_rows_cols(self.B, s1, s2)
        self.D = mat.divide_rows_cols(self.D, s2)

    def initialize_solver(self):
        self._factor_A = self._factor(self.A)
        if self._factor_A is None:
            logger.debug('Factorization of the local block A failed')
            return False
        return True

    def solve(self, rhs, out):
        if self._factor_A is None:
            raise RuntimeError('Solver is not initialized or the last factorization failed.')
        n1 = self.num_left
        b1, b2 = rhs[:n1], rhs[n1:]

        # x = inv(A) b1
        x = self._solve_A(b1)
        if self.num_right == 0:
            out[:] = x
            return bool(np.all(np.isfinite(out)))

        # b2' = b2 - B^T inv(A) b1
        b2_m = b2 - mat.mult_trans_a(self.B, x)
        # D' = D - B^T inv(A) B, symmetric in theory, enforce it against round off
        AinvB = self._solve_A(mat.to_dense(self.B))
        D_m = mat.to_dense(self.D) - mat.to_dense(mat.mult_trans_a(self.B, AinvB))
        D_m = 0.5 * (D_m + D_m.T)

        # Reduced system D' x2 = b2'
        try:
            self._factor_D = sla.cho_factor(D_m)
        except (sla.LinAlgError, ValueError):
            logger.debug('Factorization of the reduced system failed')
            self._factor_D = None
            return False
        x2 = sla.cho_solve(self._factor_D, b2_m, check_finite=False)

        # Back-substitution: A x1 = b1 - B x2
        x1 = self._solve_A(b1 - mat.makeN(np.asarray(self.B @ x2)))

        out[:n1] = x1
        out[n1:] = x2
        return bool(np.all(np.isfinite(out)))


class DenseSchurHessian(SchurComplementHessian):
    ''' Schur complement Hessian with dense blocks, A is factorized with Cholesky.
    '''

    def compute_hessian(self, L, R):
        L = mat.to_dense(L)
        R = mat.to_dense(R)
        self.A = L.T @ L
        self.B = L.T @ R
        self.D = R.T @ R

    def _factor(self, M):
        if not np.all(np.isfinite(M)):
            return None
        try:
            return sla.cho_factor(M, check_finite=False)
        except sla.LinAlgError:
            return None

    def _solve_A(self, rhs):
        return sla.cho_solve(self._factor_A, rhs, check_finite=False)


class SparseSchurHessian(SchurComplementHessian):
    ''' Schur complement Hessian with sparse CSC blocks.

    A is factorized with a sparse symmetric LU, the reduced system is small and dense so it uses Cholesky.
    '''

    def compute_hessian(self, L, R):
        L = mat.as_csc(L)
        R = mat.as_csc(R)
        Lt = L.T.tocsc()
        self.A = (Lt @ L).tocsc()
        self.B = (Lt @ R).tocsc()
        self.D = (R.T.tocsc() @ R).tocsc()

    def _factor(self, M):
        return factor_sparse_spd(M)

    def _solve_A(self, rhs):
        return self._factor_A.solve(np.asarray(rhs, dtype=np.float64))
