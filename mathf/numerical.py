import logging

import numpy as np
import scipy.sparse as sp
import mathf.matrix as mat

logger = logging.getLogger(__name__)

# Relative step used for forward differences, sqrt of machine epsilon
EPS_FORW = np.sqrt(np.finfo(np.float64).eps)


def forw(q, F, i=1, h=1e-7):
    ''' Compute the numerical forward differential.

    Args:
    ----
    q:      Parameterization of the system DoF on form (N, ).
    F:      Function computing the dependent variable with respect to the independent variable q.
    i:      Vector of shape (N, ) masking the DoF under change, containing zeros except for a one in the i:th element.
             Determines the change in q as: q + i * h.
    h:      Delta step used to compute the change in F() with respect to q numerically.
    Returns:
        Numerical differential of F with respect to the i:th element of q: dF(q)/dq_i.
    '''
    return (F(q + h * i) - F(q)) / h


def cent(q, F, i=1, h=1e-6):
    ''' Compute the numerical central/symetric differential.

    Args:
    ----
    q:      Parameterization of the system DoF on form (N, ).
    F:      Function computing the dependent variable with respect to the independent variable q.
    i:      Vector of shape (N, ) masking the DoF under change, containing zeros except for a one in the i:th element.
             Determines the change in q as: q +- i * h.
    h:      Delta step used to compute the change in F() with respect to q numerically.
    Returns:
        Numerical differential of F with respect to the i:th element of q: dF(q)/dq_i.
    '''
    return (F(q + h * i) - F(q - h * i)) / (2 * h)


def Jacobian(F, q, N=cent):
    ''' Compute the Jacobian numerically.

    Args:
    ----
    F:  Residual function computing the error vector e as: e = F(q).
    q:  Parameters for the system defined in a vector on form (N, ).
    N:  Callable on form N(q, F, i) defining the numerical method for computing the derivate.
         Defaults to numerical.cent().
    Returns:
        Jacobian matrix [de/dq_1, de/dq_2, ...], with columns containing the error differentials
         with respect to change in each independent DoF in q.
    '''
    q = np.asarray(q, dtype=np.float64)
    J = [None] * len(q)                     # Store columns in list
    i = np.zeros(q.shape)
    for j in range(len(q)):
        i[j] = 1.0
        J[j] = N(q, F, i).reshape(-1, 1)    # mx? -> kx1
        i[j] = 0.0

    return np.concatenate(J, axis=-1)       # list -> matrix: |dF(q)/dq_0, dF(q)/dq_1, ..|


def jacobian_forward(F, sparse=False, scale=EPS_FORW):
    ''' Create a callable computing the forward difference Jacobian of F.

    The step for each parameter is relative to its magnitude, h = scale * |q_i| (or scale if q_i is zero),
    and is adjusted so that q_i + h is exactly representable.

    Args:
    ----
    F:      Residual function on form F(q) -> (M, ).
    sparse: If true the Jacobian is returned as a scipy CSC matrix.
    scale:  Relative size of the difference step.
    Returns:
        Callable J(q) returning the (M, N) Jacobian of F.
    '''
    def jacobian(q):
        q = np.array(q, dtype=np.float64)
        f0 = mat.makeN(F(q))
        J = np.empty((len(f0), len(q)))
        for j in range(len(q)):
            x = q[j]
            h = scale * abs(x) if x != 0 else scale
            # takes round off error into account
            temp = x + h
            h = temp - x
            q[j] = temp
            J[:, j] = (mat.makeN(F(q)) - f0) / h
            q[j] = x
        if sparse:
            return sp.csc_matrix(J)
        return J
    return jacobian


def schur_jacobian_forward(F, split, sparse=False, scale=EPS_FORW):
    ''' Create a callable computing the forward difference Jacobian of F split into a left and right block.

    Args:
    ----
    F:      Residual function on form F(q) -> (M, ).
    split:  Number of parameters in the left block, the remaining parameters form the right block.
    Returns:
        Callable J(q) returning the pair (left, right) with shapes (M, split) and (M, N - split).
    '''
    jac = jacobian_forward(F, sparse=sparse, scale=scale)

    def jacobian(q):
        J = jac(q)
        if split < 0 or split > J.shape[1]:
            raise ValueError('Split %i outside of the parameter range [0, %i].' % (split, J.shape[1]))
        return J[:, :split], J[:, split:]
    return jacobian


def schur_to_jacobian(jacobian):
    ''' Wrap a Schur Jacobian callable returning (left, right) into one returning the concatenated Jacobian.
    '''
    def full_jacobian(q):
        L, R = jacobian(q)
        return mat.concat_columns(L, R)
    return full_jacobian


def check_jacobian(F, J, q, tol, relative=False, scale=EPS_FORW):
    ''' Validate an analytic Jacobian against the forward difference Jacobian of F.

    Args:
    ----
    F:          Residual function on form F(q) -> (M, ).
    J:          Jacobian function returning a dense or sparse (M, N) matrix, or a Schur pair (left, right).
    q:          Parameters the Jacobians are evaluated at.
    tol:        Largest allowed absolute difference, or fractional difference if relative is true.
    relative:   Compare using |found - expected| / max(|found|, |expected|).
    scale:      Relative size of the difference step.
    Returns:
        True if every element is within tolerance.
    '''
    expected = jacobian_forward(F, scale=scale)(q)
    found = J(q)
    if isinstance(found, tuple):
        found = mat.concat_columns(*found)
    found = mat.to_dense(found)
    if found.shape != expected.shape:
        raise ValueError('Expected Jacobian on form %s, was %s' % (str(expected.shape), str(found.shape)))

    diff = np.abs(found - expected)
    if relative:
        largest = np.maximum(np.abs(found), np.abs(expected))
        # Elements which are zero in both are identical
        diff = np.divide(diff, largest, out=np.zeros_like(diff), where=largest > 0)
    error = float(np.max(diff)) if diff.size > 0 else 0.0
    if not error <= tol:
        row, col = np.unravel_index(np.argmax(diff), diff.shape)
        logger.debug('Jacobian mismatch at (%i, %i): found %g expected %g', row, col,
                     found[row, col], expected[row, col])
        return False
    return True
