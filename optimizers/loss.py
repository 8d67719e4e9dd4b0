''' Loss functions mapping a residual vector to a scalar cost.

Robust losses reduce the influence of outliers compared to the squared error. The gradient of a loss with respect
to the residuals replaces the residuals when the optimizer computes the gradient J^T @ g(r).
'''
import math

import numpy as np

from optimizers.config import LossType


class LossFunction:
    ''' Base class for loss functions.

    transforms_gradient is False only for the squared error, whose residual gradient is the residuals themselves,
    allowing the optimizer to skip calling gradient().
    '''
    transforms_gradient = True

    def __init__(self):
        self.number_of_functions = 0

    def set_number_of_functions(self, M):
        self.number_of_functions = M

    def process(self, residuals):
        ''' Compute the cost for the residuals.
        '''
        raise NotImplementedError

    def gradient(self, residuals, out=None):
        ''' Compute the gradient of the loss with respect to each residual.
        '''
        raise NotImplementedError

    def fixate(self, residuals):
        ''' Called when the optimizer accepts a new state.

        Returns:
            True if the loss function changed and the cost needs to be recomputed.
        '''
        return False


def _output(residuals, out):
    if out is None:
        return np.empty(np.shape(residuals))
    return out


def _max_abs(residuals):
    if len(residuals) == 0:
        return 0.0
    return float(np.max(np.abs(residuals)))


class LossSquared(LossFunction):
    ''' Squared error sum(r^2) / 2.
    '''
    transforms_gradient = False

    def process(self, residuals):
        # Avoid numerical overflow by ensuring values are around one
        m = _max_abs(residuals)
        if m == 0.0:
            return 0.0
        r = np.asarray(residuals) / m
        return 0.5 * m * float(np.dot(r, r)) * m

    def gradient(self, residuals, out=None):
        out = _output(residuals, out)
        out[:] = residuals
        return out


class LossHuber(LossFunction):
    ''' Huber loss, quadratic for |r| <= t and linear beyond it.
    '''

    def __init__(self, threshold):
        super().__init__()
        self.threshold = threshold

    def process(self, residuals):
        t = self.threshold
        a = np.abs(residuals)
        inlier = a <= t
        return float(np.sum(0.5 * a[inlier]**2) + np.sum(t * (a[~inlier] - 0.5 * t)))

    def gradient(self, residuals, out=None):
        out = _output(residuals, out)
        t = self.threshold
        out[:] = np.where(np.abs(residuals) <= t, residuals, t * np.sign(residuals))
        return out


class LossHuberSmooth(LossFunction):
    ''' Pseudo-Huber loss t^2 (sqrt(1 + (r/t)^2) - 1), a smooth approximation of the Huber loss.
    '''

    def __init__(self, threshold):
        super().__init__()
        self.threshold = threshold

    def process(self, residuals):
        t = self.threshold
        tmp = np.asarray(residuals) / t
        return float(t * t * np.sum(np.sqrt(1 + tmp * tmp) - 1))

    def gradient(self, residuals, out=None):
        out = _output(residuals, out)
        tmp = np.asarray(residuals) / self.threshold
        out[:] = residuals / np.sqrt(1.0 + tmp * tmp)
        return out


class LossCauchy(LossFunction):
    ''' Cauchy/Lorentzian loss t^2 ln(1 + (r/t)^2). Its gradient goes to zero as |r| grows.
    '''

    def __init__(self, alpha):
        super().__init__()
        self.alpha = alpha

    def process(self, residuals):
        a = self.alpha
        tmp = np.asarray(residuals) / a
        return float(a * a * np.sum(np.log1p(tmp * tmp)))

    def gradient(self, residuals, out=None):
        out = _output(residuals, out)
        tmp = np.asarray(residuals) / self.alpha
        out[:] = 2.0 * residuals / (1.0 + tmp * tmp)
        return out


class LossTukey(LossFunction):
    ''' Tukey's biweight loss. Residuals beyond the threshold contribute a constant cost and no gradient.
    '''

    def __init__(self, threshold):
        super().__init__()
        self.threshold = threshold

    def process(self, residuals):
        t = self.threshold
        coef = t * t / 6.0
        a = np.abs(residuals)
        inlier = a <= t
        tmp = 1 - (a[inlier] / t)**2
        return float(coef * np.sum(1 - tmp**3) + coef * np.count_nonzero(~inlier))

    def gradient(self, residuals, out=None):
        out = _output(residuals, out)
        t = self.threshold
        tmp = 1 - (np.asarray(residuals) / t)**2
        out[:] = np.where(np.abs(residuals) <= t, residuals * tmp * tmp, 0.0)
        return out


class LossWeighted(LossFunction):
    ''' Weighted squared error sum((w_i r_i)^2) / 2 with fixed weights.
    '''

    def __init__(self, weights=None):
        super().__init__()
        self.weights = np.zeros(0) if weights is None else np.asarray(weights, dtype=np.float64)
        self.number_of_functions = len(self.weights)

    def set_number_of_functions(self, M):
        if len(self.weights) != M:
            raise ValueError("Weights don't match number of functions, %i != %i" % (len(self.weights), M))
        self.number_of_functions = M

    def process(self, residuals):
        # Avoid numerical overflow by ensuring values are around one
        m = _max_abs(residuals)
        if m == 0.0:
            return 0.0
        r = self.weights * (np.asarray(residuals) / m)
        return 0.5 * m * float(np.dot(r, r)) * m

    def gradient(self, residuals, out=None):
        out = _output(residuals, out)
        out[:] = self.weights * self.weights * residuals
        return out


class LossIRLS(LossWeighted):
    ''' Iteratively Reweighted Least-Squares. Weights are recomputed from the residuals each time a new state is
    accepted.

    Args:
    ----
    compute_weights:    Callable on form compute_weights(residuals, weights) writing the new weights in place.
    '''

    def __init__(self, compute_weights):
        super().__init__()
        self.compute_weights = compute_weights

    def set_number_of_functions(self, M):
        self.weights = np.ones(M)
        self.number_of_functions = M

    def fixate(self, residuals):
        self.compute_weights(residuals, self.weights)
        return True


def _ensure_not_nan(value):
    if math.isnan(value):
        raise ValueError('You must specify the loss parameter')
    return value


def loss_from_config(config):
    ''' Create a loss function from its configuration.

    Args:
    ----
    config:     ConfigLoss selecting the loss type and its parameter.
    '''
    if config.type == LossType.SQUARED:
        return LossSquared()
    if config.type == LossType.IRLS:
        raise ValueError('IRLS is not supported by the factory, create LossIRLS with a weight function directly')
    parameter = _ensure_not_nan(config.parameter)
    if config.type == LossType.CAUCHY:
        return LossCauchy(parameter)
    if config.type == LossType.HUBER:
        return LossHuber(parameter)
    if config.type == LossType.HUBER_SMOOTH:
        return LossHuberSmooth(parameter)
    if config.type == LossType.TUKEY:
        return LossTukey(parameter)
    raise ValueError('Unknown loss type %s' % str(config.type))
