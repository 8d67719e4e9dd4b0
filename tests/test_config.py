import sys
import os
import math
import pytest
try:
    from optimizers.config import ConfigGaussNewton, ConfigLevenbergMarquardt, ConfigLoss, LossType
    from optimizers.least_squares import least_squares_lm
except ImportError:
    sys.path.append(os.path.join(os.path.dirname(__file__), ".."))
    from optimizers.config import ConfigGaussNewton, ConfigLevenbergMarquardt, ConfigLoss, LossType
    from optimizers.least_squares import least_squares_lm


def test_defaults():
    config = ConfigLevenbergMarquardt()
    assert config.ftol == 1e-12
    assert config.gtol == 1e-8
    assert not config.hessian_scaling
    assert config.scaling_minimum == 1e-5 and config.scaling_maximum == 1e5
    assert config.dampening_initial == 1e-3
    assert config.mixture == 1e-4
    assert config.diagonal_min == 1e-6 and config.diagonal_max == 1e32
    config.validate()


def test_copy_is_independent():
    config = ConfigLevenbergMarquardt(mixture=0.5)
    copy = config.copy()
    copy.mixture = 0.25
    copy.gtol = 1.0
    assert config.mixture == 0.5
    assert config.gtol == 1e-8
    assert isinstance(copy, ConfigLevenbergMarquardt)


def test_set_to():
    src = ConfigLevenbergMarquardt(dampening_initial=2.0, hessian_scaling=True)
    dst = ConfigLevenbergMarquardt().set_to(src)
    assert dst == src
    assert dst is not src

    base = ConfigGaussNewton().set_to(ConfigGaussNewton(ftol=1e-3))
    assert base.ftol == 1e-3


@pytest.mark.parametrize('kwargs', [
    dict(mixture=-0.1),
    dict(mixture=1.5),
    dict(dampening_initial=-1.0),
    dict(ftol=-1.0),
    dict(gtol=-1e-8),
    dict(diagonal_min=10.0, diagonal_max=1.0),
    dict(hessian_scaling=True, scaling_minimum=0.0),
])
def test_validate(kwargs):
    with pytest.raises(ValueError):
        ConfigLevenbergMarquardt(**kwargs).validate()


def test_optimizer_copies_config():
    config = ConfigLevenbergMarquardt(mixture=0.5)
    alg = least_squares_lm(config)
    config.mixture = 0.0
    config.dampening_initial = 100.0
    assert alg.config.mixture == 0.5
    assert alg.config.dampening_initial == 1e-3

    alg.configure(config)
    config.mixture = 1.0
    assert alg.config.mixture == 0.0


def test_optimizer_rejects_invalid_config():
    with pytest.raises(ValueError):
        least_squares_lm(ConfigLevenbergMarquardt(mixture=2.0))


def test_config_loss():
    config = ConfigLoss()
    assert config.type == LossType.HUBER
    assert math.isnan(config.parameter)
    assert config.is_robust()

    config.set_to(ConfigLoss(LossType.SQUARED, 1.0))
    assert not config.is_robust()
    assert config.parameter == 1.0
    copy = config.copy()
    config.reset()
    assert config.type == LossType.HUBER and math.isnan(config.parameter)
    assert copy.type == LossType.SQUARED
