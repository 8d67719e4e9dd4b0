''' Unconstrained least-squares optimizers built on the Levenberg-Marquardt core.

Usage follows the pattern:

    alg = least_squares_lm()
    alg.set_function(F, J)
    alg.initialize(x0, ftol=1e-12, gtol=1e-8)
    for i in range(max_iter):
        if alg.iterate():
            break
    x = alg.get_parameters()

The caller owns the iteration loop and any limit on the number of iterations.
'''
import numpy as np

import mathf.matrix as mat
import mathf.numerical as numer
from mathf.hessian import DenseHessian, SparseHessian
from mathf.schur import DenseSchurHessian, SchurComplementHessian, SparseSchurHessian
from optimizers.config import ConfigLevenbergMarquardt
from optimizers.levenberg_marquardt import LevenbergMarquardt


class _LeastSquaresMixin:
    ''' Shared residual handling for the concrete least-squares optimizers.
    '''

    def initialize(self, x0, ftol=None, gtol=None):
        ''' Initialize the search from x0.

        Args:
        ----
        x0:     Initial parameters on form (N, ).
        ftol:   Relative f-test tolerance, configured value is used if None.
        gtol:   Absolute g-test tolerance, configured value is used if None.
        '''
        if self.function_residuals is None:
            raise ValueError('set_function() must be called before initialize()')
        if ftol is not None:
            self.config.ftol = ftol
        if gtol is not None:
            self.config.gtol = gtol
        self.config.validate()
        self.initialize_state(x0)

    def compute_residuals(self, x):
        return mat.makeN(np.asarray(self.function_residuals(x), dtype=np.float64))

    def _check_jacobian_shape(self, J, cols):
        M = len(self.residuals)
        if J.shape != (M, cols):
            raise ValueError('Expected Jacobian on form (%i, %i), was %s' % (M, cols, str(J.shape)))

    def _loss_residuals(self):
        ''' Vector multiplied by the Jacobian transpose to form the gradient.
        '''
        if self.loss.transforms_gradient:
            return self.loss.gradient(self.residuals, self.storage_loss_gradient)
        # The residuals are the gradient of the squared error loss
        return self.residuals


class LeastSquaresLM(_LeastSquaresMixin, LevenbergMarquardt):
    ''' Levenberg-Marquardt for a residual function with a single (dense or sparse) Jacobian.

    Args:
    ----
    hessian:    DenseHessian or SparseHessian, the Hessian is computed as J^T J.
    config:     ConfigLevenbergMarquardt.
    '''

    def __init__(self, hessian, config=None):
        if not hasattr(hessian, 'update_hessian'):
            raise ValueError('Hessian must support update_hessian(), was %s' % type(hessian).__name__)
        super().__init__(hessian, config)
        self.function_residuals = None
        self.function_jacobian = None

    def set_function(self, residual_fn, jacobian_fn=None):
        ''' Specify the functions being optimized.

        Args:
        ----
        residual_fn:    Callable on form F(x) -> (M, ).
        jacobian_fn:    Callable on form J(x) -> (M, N). If None a forward difference Jacobian is used.
        '''
        self.function_residuals = residual_fn
        if jacobian_fn is None:
            jacobian_fn = numer.jacobian_forward(residual_fn, sparse=isinstance(self.hessian, SparseHessian))
        self.function_jacobian = jacobian_fn

    def function_gradient_hessian(self, x, gradient, hessian):
        J = self.function_jacobian(x)
        self._check_jacobian_shape(J, len(x))
        hessian.update_hessian(J)
        gradient[:] = mat.mult_trans_a(J, self._loss_residuals())


class LeastSquaresSchurLM(_LeastSquaresMixin, LevenbergMarquardt):
    ''' Levenberg-Marquardt where the Jacobian is split in a left and right block and the Hessian is solved using
    the Schur complement.

    Args:
    ----
    hessian:    DenseSchurHessian or SparseSchurHessian.
    config:     ConfigLevenbergMarquardt.
    '''

    def __init__(self, hessian, config=None):
        if not isinstance(hessian, SchurComplementHessian):
            raise ValueError('Expected a Schur complement Hessian, was %s' % type(hessian).__name__)
        super().__init__(hessian, config)
        self.function_residuals = None
        self.function_jacobian = None

    def set_function(self, residual_fn, jacobian_fn=None, split=None):
        ''' Specify the functions being optimized.

        Args:
        ----
        residual_fn:    Callable on form F(x) -> (M, ).
        jacobian_fn:    Callable on form J(x) -> (left, right) with shapes (M, N1) and (M, N2), N1 + N2 = N.
        split:          Number of parameters N1 in the left block, only used for the numerical Jacobian
                         when jacobian_fn is None.
        '''
        if jacobian_fn is None:
            if split is None:
                raise ValueError('The split must be specified when no Jacobian is provided')
            jacobian_fn = numer.schur_jacobian_forward(
                residual_fn, split, sparse=isinstance(self.hessian, SparseSchurHessian))
        self.function_residuals = residual_fn
        self.function_jacobian = jacobian_fn

    def function_gradient_hessian(self, x, gradient, hessian):
        L, R = self.function_jacobian(x)
        self._check_jacobian_shape(L, L.shape[1])
        self._check_jacobian_shape(R, len(x) - L.shape[1])
        hessian.compute_hessian(L, R)
        hessian.compute_gradient(L, R, self._loss_residuals(), gradient)


#
#   Factories
#
def least_squares_lm(config=None, robust=False):
    ''' Dense Levenberg-Marquardt.

    Args:
    ----
    config:     ConfigLevenbergMarquardt, defaults if None.
    robust:     If true a slower pseudo inverse solver able to handle degenerate systems is used instead of Cholesky.
    '''
    return LeastSquaresLM(DenseHessian('pseudo_inverse' if robust else 'cholesky'), config)


def least_squares_lm_sparse(config=None):
    ''' Sparse Levenberg-Marquardt. Jacobians are expected to be scipy sparse matrices.
    '''
    return LeastSquaresLM(SparseHessian(), config)


def least_squares_levenberg(dampening_initial=1e-3, sparse=False):
    ''' Levenberg's formula, dampening with the identity matrix only (mixture = 1).
    '''
    config = ConfigLevenbergMarquardt(dampening_initial=dampening_initial, mixture=1.0)
    if sparse:
        return least_squares_lm_sparse(config)
    return least_squares_lm(config)


def least_squares_schur(config=None, sparse=True):
    ''' Levenberg-Marquardt using the Schur complement to solve for each step.
    '''
    hessian = SparseSchurHessian() if sparse else DenseSchurHessian()
    return LeastSquaresSchurLM(hessian, config)


#
#   Convenience loops
#
def _run(alg, x0, max_iter, ftol, gtol):
    alg.initialize(x0, ftol, gtol)
    for i in range(max_iter):
        if alg.iterate():
            break
    return alg.get_parameters(), alg.get_function_value(), alg.is_converged()


def solve_LM(F, x0, J=None, loss=None, config=None, max_iter=500, ftol=None, gtol=None,
             sparse=False, robust=False, verbose=False):
    ''' Solve the non-linear least-squares problem using Levenberg-Marquardt.

    Args:
    ----
    F:          Callable computing the residual vector (M, ) for a given x.
    x0:         Initial condition.
    J:          Callable computing the Jacobian (M, N) for a given x, numerical Jacobian is used if None.
    loss:       Loss function from optimizers.loss, squared error if None.
    config:     ConfigLevenbergMarquardt.
    max_iter:   Maximum number of calls to iterate().
    ftol:       Relative f-test tolerance, configured value is used if None.
    gtol:       Absolute g-test tolerance, configured value is used if None.
    sparse:     If true J is expected to return scipy sparse matrices.
    robust:     Use the pseudo inverse solver (dense only).
    Returns:
        Tuple (x, fx, converged): optimal x in a least-square sence, the cost at x and False if max_iter
        was reached before convergence.
    '''
    alg = least_squares_lm_sparse(config) if sparse else least_squares_lm(config, robust)
    alg.set_verbose(verbose)
    alg.set_loss(loss)
    alg.set_function(F, J)
    return _run(alg, x0, max_iter, ftol, gtol)


def solve_schur_LM(F, x0, J=None, split=None, loss=None, config=None, max_iter=500, ftol=None, gtol=None,
                   sparse=True, verbose=False):
    ''' Solve the non-linear least-squares problem using Levenberg-Marquardt with the Schur complement.

    Args:
    ----
    F:          Callable computing the residual vector (M, ) for a given x.
    x0:         Initial condition.
    J:          Callable computing the Jacobian pair (left, right) for a given x.
    split:      Size of the left block, required if J is None.
    Returns:
        Tuple (x, fx, converged): optimal x in a least-square sence, the cost at x and False if max_iter
        was reached before convergence.
    '''
    alg = least_squares_schur(config, sparse)
    alg.set_verbose(verbose)
    alg.set_loss(loss)
    alg.set_function(F, J, split)
    return _run(alg, x0, max_iter, ftol, gtol)
