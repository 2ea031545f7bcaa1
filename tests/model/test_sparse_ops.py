#!filepath: tests/model/test_sparse_ops.py
import numpy as np

from structsvm.model.sparse import SparseVectorOps


def test_dot_with_label_offset():
    w = np.arange(6, dtype=float)  # 2 labels x 3 features
    x = {0: 1.0, 2: 2.0}

    assert SparseVectorOps.dot(w, x) == 0.0 + 2 * 2.0
    assert SparseVectorOps.dot(w, x, offset=3) == 3.0 + 2 * 5.0


def test_dot_empty_vector_is_zero():
    assert SparseVectorOps.dot(np.ones(3), {}) == 0.0


def test_add_scaled_accumulates_in_place():
    target = {1: 1.0}
    out = SparseVectorOps.add_scaled(target, {1: 2.0, 4: 1.0}, -0.5, offset=0)

    assert out is target
    assert target == {1: 0.0, 4: -0.5}


def test_densify():
    dense = SparseVectorOps.densify({0: 3.0, 2: 1.0}, 4)

    np.testing.assert_array_equal(dense, [3.0, 0.0, 1.0, 0.0])
