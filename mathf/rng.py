import numpy as np
import scipy.sparse as sp

rng = np.random.default_rng(123456)


def normal(N, mean=0.0, std=1.0):
    ''' Generate N random values drawn from a normal (Gaussian) distribution.
    '''
    return rng.normal(mean, std, N)


def uniform(N, low=-1.0, high=1.0):
    return rng.uniform(low, high, N)


def matrix(M, N, limit=1.0):
    ''' Generate a random dense matrix on form (M, N) with values in [-limit, limit).
    '''
    return rng.uniform(-limit, limit, (M, N))


def vec(N, limit=1.0):
    return rng.uniform(-limit, limit, (N, ))


def spd(N, cond=None):
    ''' Generate a random symmetric positive definite matrix on form (N, N).

    Args:
    ----
    N:      Matrix dimension.
    cond:   Optional condition number, eigenvalues are log-spaced in [1, cond].
    '''
    Q, __ = np.linalg.qr(matrix(N, N))
    if cond is None:
        e = rng.uniform(0.5, 2.0, N)
    else:
        e = np.logspace(0, np.log10(cond), N)
    return (Q * e) @ Q.T


def block_jacobian(M, blocks, bsize, right, density=1.0):
    ''' Generate a random two block Jacobian where the left block is block-diagonal in the normal equations.

    Each row of the left Jacobian depends on exactly one block of bsize parameters, making L^T L block diagonal.

    Args:
    ----
    M:          Number of residuals.
    blocks:     Number of parameter blocks in the left Jacobian.
    bsize:      Number of parameters in each left block.
    right:      Number of parameters in the (dense) right Jacobian.
    Returns:
        Left sparse CSC Jacobian (M, blocks * bsize) and right sparse CSC Jacobian (M, right).
    '''
    L = np.zeros((M, blocks * bsize))
    owner = np.arange(M) % blocks
    for i, b in enumerate(owner):
        L[i, b * bsize:(b + 1) * bsize] = rng.uniform(-1, 1, bsize)
    R = matrix(M, right)
    if density < 1.0:
        R *= rng.uniform(0, 1, R.shape) < density
    return sp.csc_matrix(L), sp.csc_matrix(R)
