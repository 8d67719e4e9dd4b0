import enum

import numpy as np


class OptimizationError(RuntimeError):
    ''' Raised when the optimizer reaches a state it can't recover from, e.g. a singular system with no fallback
    dampening or a residual function returning non-finite values.
    '''


class Mode(enum.Enum):
    ''' Processing step of the optimizer.
    '''
    COMPUTE_DERIVATIVES = 0
    DETERMINE_STEP = 1
    CONVERGED = 2


class GaussNewtonBase:
    ''' Base for Gauss-Newton style optimizers for unconstrained problems.

    Owns the parameter state and drives the derivative -> step -> accept/reject state machine. The parameter
    vector x is only replaced once a candidate x_next is accepted, at which point the two buffers are swapped.

    Args:
    ----
    hessian:    HessianMath implementation used to store and solve the approximate Hessian.
    '''

    def __init__(self, hessian):
        self.hessian = hessian
        self.config = None

        # Current parameter state
        self.x = np.zeros(0)
        # Proposed next state of parameters
        self.x_next = np.zeros(0)
        # Proposed relative change in parameter's state
        self.p = np.zeros(0)
        self.gradient = np.zeros(0)
        # Scaling used to compensate for poorly scaled variables
        self.scaling = np.zeros(0)
        # Cost at x
        self.fx = np.nan

        self.mode = Mode.COMPUTE_DERIVATIVES
        self.total_full_steps = 0
        self.total_retries = 0
        self.verbose = False
        self._updated = False

    def initialize_state(self, x0):
        ''' Allocate the state for the parameters x0 and reset the state machine.
        '''
        x0 = np.asarray(x0, dtype=np.float64)
        if x0.ndim != 1:
            x0 = np.reshape(x0, (-1, ))
        N = len(x0)
        self.x = x0.copy()
        self.x_next = np.zeros(N)
        self.p = np.zeros(N)
        self.gradient = np.zeros(N)
        # Initialize scaling to 1, which is no scaling
        self.scaling = np.ones(N)
        self.hessian.init(N)

        self.mode = Mode.COMPUTE_DERIVATIVES
        self.total_full_steps = 0
        self.total_retries = 0
        self._updated = False

    def iterate(self):
        ''' Perform the work of the current mode.

        Returns:
            True if the optimizer has converged.
        '''
        self._updated = False
        if self.mode == Mode.COMPUTE_DERIVATIVES:
            self.total_full_steps += 1
            converged = self.update_derivatives()
        elif self.mode == Mode.DETERMINE_STEP:
            self.total_retries += 1
            converged = self.compute_and_consider_new()
        elif self.mode == Mode.CONVERGED:
            return True
        else:
            raise OptimizationError('BUG! mode=%s' % str(self.mode))

        if converged:
            self.mode = Mode.CONVERGED
            return True
        return False

    def update_derivatives(self):
        ''' Compute the gradient and Hessian at x.

        Returns:
            True if converged.
        '''
        raise NotImplementedError

    def compute_and_consider_new(self):
        ''' Compute a candidate step and accept or reject it.

        Returns:
            True if converged.
        '''
        raise NotImplementedError

    def is_scaling(self):
        return self.config.hessian_scaling

    def compute_scaling(self):
        ''' Set the scaling to the square root of the Hessian's diagonal elements, clamped to the configured range.
        '''
        self.hessian.extract_diagonals(self.scaling)
        # mathematically it should never be negative but...
        np.sqrt(np.abs(self.scaling), out=self.scaling)
        np.clip(self.scaling, self.config.scaling_minimum, self.config.scaling_maximum, out=self.scaling)

    def apply_scaling(self):
        ''' Apply scaling to gradient and Hessian.
        '''
        self.gradient /= self.scaling
        self.hessian.divide_rows_cols(self.scaling)

    def undo_scaling_on_parameters(self, p):
        p /= self.scaling

    def check_convergence_g_test(self, g):
        ''' g-test: max(|g(x)|) <= gtol
        '''
        return len(g) == 0 or float(np.max(np.abs(g))) <= self.config.gtol

    def compute_predicted_reduction(self, p):
        ''' Reduction in cost predicted by the quadratic model for the step p.
        '''
        return -float(np.dot(self.gradient, p)) - 0.5 * self.hessian.inner_vector_hessian(p)

    def set_verbose(self, verbose):
        ''' Toggle logging of the optimization progress at INFO level.
        '''
        self.verbose = verbose

    def get_parameters(self):
        return self.x.copy()

    def get_function_value(self):
        return self.fx

    def is_converged(self):
        return self.mode == Mode.CONVERGED

    def is_updated(self):
        ''' True if the last call to iterate() accepted a new state.
        '''
        return self._updated
