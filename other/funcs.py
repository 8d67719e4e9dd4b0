import numpy as np

import mathf.matrix as mat


def make_callable(func, *args):
    ''' Bind the trailing arguments of func, returning a callable on form F(x) as expected by the optimizers.
    '''
    def func_of_x(x):
        return func(x, *args)
    return func_of_x


def verify(A, B, emsg='Mismatch in %i', smsg=None, atol=4e-7, rtol=0.0):
    ''' Check for equality of A & B, dense or sparse.

    Params:
    ----
    A:      Array or matrix as LH argument.
    B:      Array, matrix or scalar as RH argument.
    emsg:   Error message formatted with the number of mismatching rows.
    smsg:   Message printed if all are equal.
    atol:   Absolute tolerance in the summed difference of each row.
    rtol:   Tolerance relative to the summed magnitude of B in each row.
    '''
    A = np.atleast_1d(mat.to_dense(A))
    B = np.broadcast_to(mat.to_dense(B), A.shape)
    axis = tuple(np.arange(1, A.ndim, dtype=np.int64))
    diff = A - B
    diffsum = np.sum(np.abs(diff), axis=axis)
    tol = atol + rtol * np.sum(np.abs(B), axis=axis)
    is_equal = diffsum <= tol
    all_equal = np.all(is_equal)
    if not all_equal:
        nequal = np.logical_not(is_equal)
        print('Value difference(s):')
        print(diff[nequal][:10])
        print('Elementwise absolute difference(s):')
        print(diffsum[nequal][:10])
    assert all_equal, emsg % (len(is_equal) - np.sum(is_equal))
    if smsg is not None:
        print(smsg)
