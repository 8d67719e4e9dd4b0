import dataclasses
import enum
import math


@dataclasses.dataclass
class ConfigGaussNewton:
    ''' Configuration shared by Gauss-Newton based optimizers.

    Args:
    ----
    gtol:               Absolute tolerance on the gradient magnitude, g-test: max(|g|) <= gtol.
    ftol:               Relative tolerance on the change in cost, f-test: ftol * fx_prev >= fx_prev - fx.
    hessian_scaling:    If true parameters are dynamically rescaled by the square root of the Hessian's diagonal
                         before computing each step, improving conditioning for poorly scaled variables.
    scaling_minimum:    Lower clamp of the scaling factors.
    scaling_maximum:    Upper clamp of the scaling factors.
    '''
    gtol: float = 1e-8
    ftol: float = 1e-12
    hessian_scaling: bool = False
    scaling_minimum: float = 1e-5
    scaling_maximum: float = 1e5

    def copy(self):
        return dataclasses.replace(self)

    def set_to(self, src):
        for f in dataclasses.fields(src):
            setattr(self, f.name, getattr(src, f.name))
        return self

    def validate(self):
        if self.gtol < 0 or self.ftol < 0:
            raise ValueError('Tolerances must be non-negative, was ftol=%g gtol=%g' % (self.ftol, self.gtol))
        if self.hessian_scaling and not 0 < self.scaling_minimum <= self.scaling_maximum:
            raise ValueError('Scaling clamp must satisfy 0 < min <= max, was [%g, %g]' %
                             (self.scaling_minimum, self.scaling_maximum))


@dataclasses.dataclass
class ConfigLevenbergMarquardt(ConfigGaussNewton):
    ''' Configuration for Levenberg-Marquardt.

    Args:
    ----
    dampening_initial:  Initial value of the dampening parameter lambda. Start at around 1e-3.
    mixture:            Blend between Levenberg's and Marquardt's formula, 1.0 = Levenberg (identity),
                         0.0 = Marquardt (Hessian diagonal).
    diagonal_min:       Lower clamp of the Hessian diagonal elements when computing the dampened step.
    diagonal_max:       Upper clamp of the Hessian diagonal elements when computing the dampened step.
    '''
    dampening_initial: float = 1e-3
    mixture: float = 1e-4
    diagonal_min: float = 1e-6
    diagonal_max: float = 1e32

    def validate(self):
        super().validate()
        if not 0.0 <= self.mixture <= 1.0:
            raise ValueError('Mixture must be in [0, 1], was %g' % self.mixture)
        if self.dampening_initial < 0:
            raise ValueError('Dampening must be non-negative, was %g' % self.dampening_initial)
        if self.diagonal_min > self.diagonal_max:
            raise ValueError('Diagonal clamp must satisfy min <= max, was [%g, %g]' %
                             (self.diagonal_min, self.diagonal_max))


class LossType(enum.Enum):
    CAUCHY = 'cauchy'
    HUBER = 'huber'
    HUBER_SMOOTH = 'huber_smooth'
    SQUARED = 'squared'
    TUKEY = 'tukey'
    IRLS = 'irls'


@dataclasses.dataclass
class ConfigLoss:
    ''' Selects a loss function and its tuning parameter, see optimizers.loss.loss_from_config().
    '''
    type: LossType = LossType.HUBER
    parameter: float = math.nan

    def copy(self):
        return dataclasses.replace(self)

    def set_to(self, src):
        self.type = src.type
        self.parameter = src.parameter
        return self

    def reset(self):
        self.type = LossType.HUBER
        self.parameter = math.nan

    def is_robust(self):
        return self.type != LossType.SQUARED
