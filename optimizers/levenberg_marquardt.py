''' Levenberg-Marquardt for least-squares problems.

The step is found by solving the dampened normal equations:

    (H + diag(d' + lambda * (mixture + (1 - mixture) * d'))) p = -g

where H = J^T J, g = J^T r and d' is the clamped diagonal of H. The dampening lambda is reduced when a step
improves the cost and increased otherwise.

[1] K. Madsen and H. B. Nielsen and O. Tingleff, "Methods for Non-Linear Least Squares Problems (2nd ed.)"
    Informatics and Mathematical Modelling, Technical University of Denmark
'''
import logging
import math

import numpy as np

from optimizers.config import ConfigLevenbergMarquardt
from optimizers.gauss_newton import GaussNewtonBase, Mode, OptimizationError
from optimizers.loss import LossSquared

logger = logging.getLogger(__name__)


class LevenbergMarquardt(GaussNewtonBase):
    ''' Levenberg-Marquardt core. Concrete classes provide the residual and Jacobian plumbing by implementing
    compute_residuals() and function_gradient_hessian().

    Args:
    ----
    hessian:    HessianMath implementation.
    config:     ConfigLevenbergMarquardt, copied. Defaults are used if None.
    '''
    # Maximum allowed value of lambda
    MAX_LAMBDA = 1e100
    NU_INITIAL = 2.0

    def __init__(self, hessian, config=None):
        super().__init__(hessian)
        self.configure(ConfigLevenbergMarquardt() if config is None else config)
        self.loss = LossSquared()

        self.residuals = np.zeros(0)
        self.residuals_next = np.zeros(0)
        self.storage_loss_gradient = np.zeros(0)
        self.diag_orig = np.zeros(0)
        self.diag_step = np.zeros(0)

        # Dampening parameter. Small values for a Gauss-Newton step and larger values for a gradient step
        self.lambda_ = self.config.dampening_initial
        # Escalation of lambda on consecutive rejected steps
        self.nu = LevenbergMarquardt.NU_INITIAL

    def configure(self, config):
        ''' Change the configuration. The configuration is copied and later changes to config have no effect.
        '''
        config.validate()
        self.config = config.copy()

    def set_loss(self, loss):
        ''' Specify the loss function, None for the squared error.
        '''
        self.loss = LossSquared() if loss is None else loss

    def initialize_state(self, x0):
        super().initialize_state(x0)
        N = len(self.x)
        self.lambda_ = self.config.dampening_initial
        self.nu = LevenbergMarquardt.NU_INITIAL

        self.diag_orig = np.zeros(N)
        self.diag_step = np.zeros(N)

        self.residuals = np.array(self.compute_residuals(self.x), dtype=np.float64)
        M = len(self.residuals)
        self.residuals_next = np.zeros(M)
        self.storage_loss_gradient = np.zeros(M)

        self.loss.set_number_of_functions(M)
        self.loss.fixate(self.residuals)
        self.fx = self.cost_from_residuals(self.residuals)
        if not math.isfinite(self.fx):
            raise OptimizationError('Uncountable initial cost: %s' % str(self.fx))

        if self.verbose:
            logger.info('Steps     fx        change      |step|     max(g)  tr-ratio  lambda ')
            logger.info('%-4d  %9.3E  %10.3E  %9.3E  %9.3E  %6.3f   %6.2E',
                        self.total_full_steps, self.fx, 0.0, 0.0, 0.0, 0.0, self.lambda_)

    def update_derivatives(self):
        ''' Compute the gradient and Hessian at x, then check the g-test.

        Returns:
            True if converged.
        '''
        self.function_gradient_hessian(self.x, self.gradient, self.hessian)
        if not np.all(np.isfinite(self.gradient)):
            raise OptimizationError('Uncountable gradient, check the Jacobian function')

        if self.check_convergence_g_test(self.gradient):
            return True

        if self.is_scaling():
            self.compute_scaling()
            self.apply_scaling()

        self.hessian.extract_diagonals(self.diag_orig)
        if not np.all(np.isfinite(self.diag_orig)):
            raise OptimizationError('Uncountable Hessian diagonal, check the Jacobian function')
        self.mode = Mode.DETERMINE_STEP
        return False

    def compute_and_consider_new(self):
        ''' Compute a new candidate state and accept it if the cost improves.

        Returns:
            True if converged.
        '''
        if not self.compute_step(self.lambda_, self.gradient, self.p):
            if self.config.mixture == 0.0:
                raise OptimizationError('Singular matrix encountered. Try setting mixture to a non-zero value')
            self.lambda_ *= 4
            logger.debug('%i Step computation failed. Increasing lambda to %g', self.total_full_steps, self.lambda_)
            return self.maximum_lambda_nu()

        # Gradient and Hessian are in the scaled space, so is the step until scaling is undone
        predicted_reduction = self.compute_predicted_reduction(self.p)
        if self.is_scaling():
            self.undo_scaling_on_parameters(self.p)

        np.add(self.x, self.p, out=self.x_next)
        self.residuals_next[:] = self.compute_residuals(self.x_next)
        fx_candidate = self.cost_from_residuals(self.residuals_next)

        if not math.isfinite(fx_candidate):
            raise OptimizationError('Uncountable candidate cost: %s' % str(fx_candidate))

        actual_reduction = self.fx - fx_candidate
        if actual_reduction == 0 or predicted_reduction == 0:
            logger.debug('%i reduction of zero', self.total_full_steps)
            return True

        return self.process_step_results(fx_candidate, actual_reduction, predicted_reduction)

    def process_step_results(self, fx_candidate, actual_reduction, predicted_reduction):
        ''' Adjust the dampening and change the state if the candidate improved the cost.

        Returns:
            True if converged.
        '''
        ratio = actual_reduction / predicted_reduction

        if fx_candidate < self.fx:
            # Reduce the amount of dampening, see [1]
            self.lambda_ = self.lambda_ * max(1.0 / 3.0, 1.0 - (2.0 * ratio - 1.0)**3)
            self.nu = LevenbergMarquardt.NU_INITIAL
            accepted = True
        else:
            self.lambda_ *= self.nu
            self.nu *= 2
            accepted = False

        if not math.isfinite(self.lambda_) or not math.isfinite(self.nu):
            raise OptimizationError('BUG! lambda=%s nu=%s' % (str(self.lambda_), str(self.nu)))

        if self.verbose:
            logger.info('%-4d  %9.3E  %10.3E  %9.3E  %9.3E  %6.3f   %6.2E',
                        self.total_full_steps, fx_candidate, fx_candidate - self.fx,
                        np.linalg.norm(self.p), np.max(np.abs(self.gradient)), ratio, self.lambda_)

        if accepted:
            fx_prev = self.fx
            self.accept_new_state(fx_candidate)
            return self.maximum_lambda_nu() or self.check_convergence_f_test(fx_candidate, fx_prev)
        return self.maximum_lambda_nu()

    def accept_new_state(self, fx_candidate):
        ''' Switch the internal state over to the candidate.
        '''
        self.x, self.x_next = self.x_next, self.x
        self.residuals, self.residuals_next = self.residuals_next, self.residuals
        self.fx = fx_candidate

        # If the loss function is dynamic the cost it will try to beat next time changes
        if self.loss.fixate(self.residuals):
            self.fx = self.cost_from_residuals(self.residuals)

        self.mode = Mode.COMPUTE_DERIVATIVES
        self._updated = True

    def check_convergence_f_test(self, fx, fx_prev):
        ''' f-test: ftol * fx_prev >= fx_prev - fx
        '''
        if fx_prev < fx:
            raise OptimizationError('Score got worse. Should have been caught earlier!')
        # f-test, avoid potential divide by zero errors
        return self.config.ftol * fx_prev >= fx_prev - fx

    def cost_from_residuals(self, residuals):
        return self.loss.process(residuals)

    def compute_step(self, lambda_, gradient, step):
        ''' Adjust the Hessian's diagonal elements and compute the next step.

        Args:
        ----
        lambda_:    Dampening parameter.
        gradient:   Gradient vector (N, ).
        step:       Output vector (N, ) for the step.
        Returns:
            True if the solver could compute the step.
        '''
        mixture = self.config.mixture
        d = np.clip(np.abs(self.diag_orig), self.config.diagonal_min, self.config.diagonal_max)
        self.diag_step[:] = d + lambda_ * (mixture + (1.0 - mixture) * d)
        self.hessian.set_diagonals(self.diag_step)

        if not self.hessian.initialize_solver():
            return False

        if self.hessian.solve(gradient, step):
            np.negative(step, out=step)
            return True
        return False

    def maximum_lambda_nu(self):
        ''' True if lambda or nu have grown so large that optimization should stop.
        '''
        return (not math.isfinite(self.lambda_) or self.lambda_ >= LevenbergMarquardt.MAX_LAMBDA
                or not math.isfinite(self.nu))

    def compute_residuals(self, x):
        ''' Compute the residuals at x.

        Returns:
            Residual vector (M, ).
        '''
        raise NotImplementedError

    def function_gradient_hessian(self, x, gradient, hessian):
        ''' Compute the gradient and Hessian at x. The residuals at x are stored in self.residuals.
        '''
        raise NotImplementedError
