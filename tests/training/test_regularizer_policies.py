#!filepath: tests/training/test_regularizer_policies.py
import math

import numpy as np
import pytest

from structsvm.config.training_config import TrainingConfig
from structsvm.model.parameters import WeightArena
from structsvm.training.regularizer import (
    DenseRegularizer,
    OccasionalL2Regularizer,
    StepGradient,
    resolve_update_policy,
)
from structsvm.training.context import TrainingState
from structsvm.training.registry import train_model
from structsvm.utils.errors import ConfigurationError


def _arena():
    a = WeightArena(num_labels=2, num_features=2)
    a.features.w[:] = [0.5, 0.0, -0.5, 0.0]
    return a


def _step(loss=None, gold_is_best=False):
    return StepGradient(loss=loss or {}, bias=np.zeros(2), gold_is_best=gold_is_best)


def test_dense_folds_l2_into_every_nonzero_weight():
    arena = _arena()
    DenseRegularizer(l2=0.2).apply(arena, _step({1: 1.0}), num_elements=10)

    w = arena.features.w
    # g = l2 * w for weights, plus the loss on coordinate 1
    assert w[0] == pytest.approx(0.5 - 0.1 / math.sqrt(0.01))
    assert w[1] == pytest.approx(-1.0)
    assert w[2] == pytest.approx(-0.5 + 0.1 / math.sqrt(0.01))
    assert w[3] == 0.0
    assert arena.features.G[3] == 0.0


def test_occasional_l2_skips_when_gold_wins_off_schedule():
    arena = _arena()
    arena.t = 3  # K = 8/4 = 2, 3 % 2 != 0
    before = arena.clone()

    OccasionalL2Regularizer(l2=0.2).apply(arena, _step(gold_is_best=True), num_elements=8)

    np.testing.assert_array_equal(arena.features.w, before.features.w)
    np.testing.assert_array_equal(arena.features.G, before.features.G)


def test_occasional_l2_regularizer_step_scales_by_k_over_n():
    arena = _arena()
    arena.t = 4  # 4 % 2 == 0

    OccasionalL2Regularizer(l2=0.2).apply(arena, _step(gold_is_best=True), num_elements=8)

    # g = (K/N) * l2 * w = 0.25 * 0.2 * 0.5
    g = 0.025
    assert arena.features.G[0] == pytest.approx(g * g)
    assert arena.features.w[0] == pytest.approx(0.5 - 1.0)  # adagrad first step moves by n
    assert arena.features.G[1] == 0.0


def test_bias_update_disabled():
    arena = _arena()
    step = StepGradient(loss={}, bias=np.array([1.0, -1.0]))
    DenseRegularizer(fit_bias=False).apply(arena, step, num_elements=1)

    assert not arena.bias.w.any()


def test_resolve_update_policy():
    assert resolve_update_policy("dense", l2=0.1).l2 == 0.1
    with pytest.raises(ConfigurationError):
        resolve_update_policy("nope")
    with pytest.raises(ConfigurationError):
        resolve_update_policy("pegasos", l2=0.1, learn_costs=True)


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"l2": 0.0}, "requires l2 > 0"),
        ({"l2": 0.1, "l1": 1000.0}, "does not support l1"),
        ({"l2": 0.1, "n": 0.5}, "learning-rate scale"),
    ],
)
def test_pegasos_rejects_parameters_it_cannot_honour(kwargs, message):
    with pytest.raises(ConfigurationError, match=message):
        resolve_update_policy("pegasos", **kwargs)


def test_pegasos_with_l1_fails_the_run(separable_dataset):
    cfg = TrainingConfig(variant="svm_pegasos", l2=0.1, l1=1000.0, iterations=3, metrics=[])
    result = train_model(cfg, separable_dataset)

    assert result.state == TrainingState.FAILED
    assert "does not support l1" in result.error
