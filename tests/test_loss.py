import sys
import os
import numpy as np
import pytest
try:
    from mathf import numerical as numer
    import mathf.rng as rng
    from optimizers.config import ConfigLoss, LossType
    from optimizers.loss import (LossCauchy, LossHuber, LossHuberSmooth, LossIRLS, LossSquared, LossTukey,
                                 LossWeighted, loss_from_config)
    from other.funcs import verify
except ImportError:
    sys.path.append(os.path.join(os.path.dirname(__file__), ".."))
    from mathf import numerical as numer
    import mathf.rng as rng
    from optimizers.config import ConfigLoss, LossType
    from optimizers.loss import (LossCauchy, LossHuber, LossHuberSmooth, LossIRLS, LossSquared, LossTukey,
                                 LossWeighted, loss_from_config)
    from other.funcs import verify


def make_losses():
    return [
        LossSquared(),
        LossHuber(1.0),
        LossHuberSmooth(1.5),
        LossCauchy(0.8),
        LossTukey(2.0),
        LossWeighted(rng.uniform(20, 0.5, 2.0)),
    ]


@pytest.mark.parametrize('loss', make_losses())
def test_zero_residuals(loss):
    loss.set_number_of_functions(20)
    assert loss.process(np.zeros(20)) == 0.0
    verify(loss.gradient(np.zeros(20)), 0.0, atol=0)


@pytest.mark.parametrize('loss', make_losses())
def test_gradient_numerical(loss):
    loss.set_number_of_functions(20)
    r = rng.vec(20, 3.0)

    def cost(q):
        return np.array([loss.process(q)])

    g_num = numer.Jacobian(cost, r)[0]
    out = np.zeros(20)
    g = loss.gradient(r, out)
    assert g is out
    verify(g, g_num, atol=1e-6)


@pytest.mark.parametrize('loss', make_losses())
def test_non_negative(loss):
    loss.set_number_of_functions(20)
    assert loss.process(rng.vec(20, 10.0)) >= 0


def test_squared():
    r = np.array([1.0, -2.0, 3.0])
    assert np.isclose(LossSquared().process(r), 7.0)
    verify(LossSquared().gradient(r), r, atol=0)
    assert not LossSquared.transforms_gradient


def test_huber():
    loss = LossHuber(2.0)
    # Inlier r^2 / 2, outlier t * (|r| - t / 2)
    assert np.isclose(loss.process(np.array([1.0])), 0.5)
    assert np.isclose(loss.process(np.array([-5.0])), 2.0 * (5.0 - 1.0))
    verify(loss.gradient(np.array([1.0, -5.0, 5.0])), np.array([1.0, -2.0, 2.0]), atol=0)


def test_tukey_constant_beyond_threshold():
    loss = LossTukey(1.0)
    assert np.isclose(loss.process(np.array([3.0])), 1.0 / 6.0)
    assert np.isclose(loss.process(np.array([30.0])), 1.0 / 6.0)
    verify(loss.gradient(np.array([3.0, -30.0])), 0.0, atol=0)


def test_cauchy_redescends():
    loss = LossCauchy(1.0)
    g = loss.gradient(np.array([1.0, 10.0, 100.0]))
    assert g[0] > g[1] > g[2] > 0


def test_weighted():
    w = np.array([1.0, 2.0, 0.0])
    loss = LossWeighted(w)
    r = np.array([1.0, 1.0, 100.0])
    assert np.isclose(loss.process(r), 0.5 * (1 + 4))
    verify(loss.gradient(r), np.array([1.0, 4.0, 0.0]), atol=0)

    with pytest.raises(ValueError):
        loss.set_number_of_functions(4)


def test_irls():
    def compute_weights(residuals, weights):
        weights[:] = 1.0 / np.maximum(np.abs(residuals), 1.0)

    loss = LossIRLS(compute_weights)
    loss.set_number_of_functions(3)
    verify(loss.weights, np.ones(3), atol=0)

    r = np.array([0.5, 2.0, -4.0])
    assert np.isclose(loss.process(r), 0.5 * (0.25 + 4 + 16))
    assert loss.fixate(r)
    verify(loss.weights, np.array([1.0, 0.5, 0.25]), atol=0)
    assert np.isclose(loss.process(r), 0.5 * (0.25 + 1 + 1))


@pytest.mark.parametrize('loss', make_losses())
def test_fixate_static(loss):
    loss.set_number_of_functions(20)
    assert not loss.fixate(rng.vec(20))


def test_factory():
    assert isinstance(loss_from_config(ConfigLoss(LossType.SQUARED)), LossSquared)
    assert isinstance(loss_from_config(ConfigLoss(LossType.HUBER, 1.0)), LossHuber)
    assert isinstance(loss_from_config(ConfigLoss(LossType.HUBER_SMOOTH, 1.0)), LossHuberSmooth)
    assert isinstance(loss_from_config(ConfigLoss(LossType.TUKEY, 1.0)), LossTukey)
    loss = loss_from_config(ConfigLoss(LossType.CAUCHY, 0.5))
    assert isinstance(loss, LossCauchy)
    assert loss.alpha == 0.5


def test_factory_rejects():
    with pytest.raises(ValueError):
        loss_from_config(ConfigLoss(LossType.HUBER))
    with pytest.raises(ValueError):
        loss_from_config(ConfigLoss(LossType.IRLS, 1.0))
