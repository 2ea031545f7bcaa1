#!filepath: tests/model/test_adaptive_updater.py
import math

import numpy as np
import pytest

from structsvm.model.parameters import ParameterBlock
from structsvm.model.updater import AdaptiveWeightUpdater


def _block(w, G=None, u=None):
    n = len(w)
    return ParameterBlock(
        w=np.array(w, dtype=float),
        G=np.array(G if G is not None else [0.0] * n, dtype=float),
        u=np.array(u if u is not None else [0.0] * n, dtype=float),
    )


# ============================================================
# l1 == 0 -> plain adaptive subgradient step
# ============================================================
@pytest.mark.parametrize("n", [1.0, 0.3])
def test_step_reduces_to_adagrad_sgd(n):
    block = _block([0.5], G=[3.0])
    AdaptiveWeightUpdater(l1=0.0, n=n).apply_gradient(block, 0, 2.0, t=7)

    assert block.G[0] == 7.0
    assert block.w[0] == 0.5 - 2.0 * n / math.sqrt(7.0)
    assert block.u[0] == 0.0  # u untouched without L1


def test_zero_accumulator_is_noop():
    block = _block([0.25])
    AdaptiveWeightUpdater().apply_gradient(block, 0, 0.0, t=1)

    assert block.w[0] == 0.25
    assert block.G[0] == 0.0


# ============================================================
# l1 > 0 -> truncated gradient
# ============================================================
def test_l1_prunes_to_exact_zero():
    block = _block([5.0], G=[1.0], u=[0.1])
    # u -> 0.2, |u|/t = 0.1 <= l1
    AdaptiveWeightUpdater(l1=0.1).apply_gradient(block, 0, 0.1, t=2)

    assert block.w[0] == 0.0
    assert block.u[0] == pytest.approx(0.2)


def test_l1_keeps_large_dual_average():
    block = _block([0.0])
    AdaptiveWeightUpdater(l1=0.1, n=1.0).apply_gradient(block, 0, 1.0, t=1)

    # -sign(u) * (t*n/sqrt(G)) * (|u|/t - l1)
    assert block.w[0] == pytest.approx(-(1.0 / 1.0) * (1.0 - 0.1))


# ============================================================
# vectorized form matches the scalar one
# ============================================================
@pytest.mark.parametrize("l1", [0.0, 0.05])
def test_vectorized_matches_scalar(l1):
    rng = np.random.default_rng(0)
    w = rng.normal(size=6)
    G = np.abs(rng.normal(size=6))
    G[2] = 0.0
    u = rng.normal(size=6)
    g = rng.normal(size=6)
    g[2] = 0.0

    scalar = _block(w, G, u)
    vector = _block(w, G, u)
    upd = AdaptiveWeightUpdater(l1=l1, n=0.5)

    for i in range(6):
        upd.apply_gradient(scalar, i, g[i], t=3)
    upd.apply(vector, g, t=3)

    np.testing.assert_allclose(vector.w, scalar.w)
    np.testing.assert_allclose(vector.G, scalar.G)
    np.testing.assert_allclose(vector.u, scalar.u)


def test_vectorized_subset_only_touches_indices():
    block = _block([1.0, 1.0, 1.0])
    AdaptiveWeightUpdater().apply(block, np.array([2.0]), t=1, indices=np.array([1]))

    np.testing.assert_array_equal(block.w, [1.0, 0.0, 1.0])
    np.testing.assert_array_equal(block.G, [0.0, 4.0, 0.0])
